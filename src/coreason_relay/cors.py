# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_relay

import re
from typing import Any, Callable, Iterable, Optional

from loguru import logger
from starlette.datastructures import Headers, MutableHeaders
from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Message, Send

OriginPredicate = Callable[[str], bool]


class OriginPolicy:
    """
    Origin predicate built from a list of regular expressions.
    A request without an Origin header (same-origin, curl, server-to-server) is always allowed.
    """

    def __init__(self, patterns: Iterable[str]):
        self.patterns = [re.compile(p) for p in patterns]

    def __call__(self, origin: Optional[str]) -> bool:
        if not origin:
            return True
        if any(p.fullmatch(origin) for p in self.patterns):
            return True
        logger.warning(f"CORS blocked origin: {origin}")
        return False


class PolicyCORSMiddleware(CORSMiddleware):
    """
    Starlette CORS middleware whose origin check is delegated to a predicate.
    Allowed origins are echoed back with credentials. Responses to other origins
    carry no CORS headers at all, including any relayed from the upstream, and
    their preflights get a 400.
    """

    def __init__(self, app: ASGIApp, origin_predicate: OriginPredicate, **kwargs: Any):
        kwargs.setdefault("allow_methods", ["*"])
        kwargs.setdefault("allow_headers", ["*"])
        kwargs.setdefault("allow_credentials", True)
        super().__init__(app, allow_origins=(), **kwargs)
        self.origin_predicate = origin_predicate

    def is_allowed_origin(self, origin: str) -> bool:
        return self.origin_predicate(origin)

    async def send(self, message: Message, send: Send, request_headers: Headers) -> None:
        origin = request_headers.get("Origin")
        if message["type"] != "http.response.start" or origin is None or self.is_allowed_origin(origin):
            await super().send(message, send, request_headers)
            return

        message.setdefault("headers", [])
        headers = MutableHeaders(scope=message)
        for name in {key for key in headers.keys() if key.startswith("access-control-")}:
            del headers[name]
        headers.add_vary_header("Origin")
        await send(message)
