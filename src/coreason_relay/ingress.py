# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_relay

from urllib.parse import unquote

from fastapi import Request

from coreason_relay.config import RelaySettings
from coreason_relay.exceptions import PayloadTooLargeError
from coreason_relay.headers import build_header_map
from coreason_relay.models import InboundRequest


def strip_mount_prefix(raw_path: str, prefix: str) -> str:
    """
    Removes the mount prefix from a raw request path.
    The remainder always starts with '/'; the bare prefix maps to '/'.

    A client may percent-encode characters of the prefix itself
    (``/api/v2/telemetry%2Dq7x9p/e``). The prefix is then matched segment by
    segment on the decoded form, while the remainder keeps its raw encoding.
    """
    if raw_path.startswith(prefix):
        remainder = raw_path[len(prefix) :]
    else:
        prefix_segments = prefix.split("/")
        segments = raw_path.split("/")
        mounted = [unquote(segment) for segment in segments[: len(prefix_segments)]] == prefix_segments
        remainder = "/".join(segments[len(prefix_segments) :]) if mounted else raw_path
    if not remainder.startswith("/"):
        remainder = "/" + remainder
    return remainder


async def read_body(request: Request, limit: int) -> bytes:
    """
    Reads the raw request body, refusing anything over ``limit`` bytes.

    Raises:
        PayloadTooLargeError: Declared or actual size is over the limit.
    """
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise PayloadTooLargeError(int(declared), limit)

    chunks = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > limit:
            raise PayloadTooLargeError(received, limit)
        chunks.append(chunk)
    return b"".join(chunks)


async def read_inbound(request: Request, settings: RelaySettings) -> InboundRequest:
    """
    Builds the InboundRequest for a request received under the mount prefix.

    The path is taken from the raw request target so percent-encoding reaches
    the upstream untouched, and the query string is kept.
    """
    raw_path = request.scope.get("raw_path")
    path = raw_path.decode("latin-1") if raw_path else request.url.path
    path = strip_mount_prefix(path, settings.mount_prefix)

    query = request.scope.get("query_string", b"").decode("latin-1")
    if query:
        path = f"{path}?{query}"

    headers = build_header_map((k.decode("latin-1"), v.decode("latin-1")) for k, v in request.headers.raw)
    body = await read_body(request, settings.body_limit_bytes)

    return InboundRequest(
        method=request.method.upper(),
        path=path,
        headers=headers,
        body=body,
        client_address=request.client.host if request.client else None,
    )
