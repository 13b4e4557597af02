# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_relay

from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

# Methods that never carry a body upstream
BODILESS_METHODS = frozenset({"GET", "HEAD"})


class InboundRequest(BaseModel):
    """
    A client request as received under the mount prefix.
    Headers are an ordered, case-insensitive multimap; repeated headers stay repeated.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    method: str = Field(..., description="HTTP verb, upper case")
    path: str = Field(..., description="Request path with the mount prefix stripped, query string included")
    headers: httpx.Headers = Field(default_factory=httpx.Headers)
    body: bytes = b""
    client_address: Optional[str] = Field(None, description="Transport-level peer address")


class OutboundRequest(BaseModel):
    """The request sent to the selected upstream host."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    host: str
    method: str
    path: str
    headers: httpx.Headers
    body: Optional[bytes] = None

    @property
    def url(self) -> str:
        return f"https://{self.host}{self.path}"


class UpstreamResponse(BaseModel):
    """A fully buffered upstream response. The body is already content-decoded."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status_code: int
    headers: httpx.Headers
    body: bytes = b""
