# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_relay

from typing import Iterable, Optional, Tuple

import httpx

from coreason_relay.config import RelaySettings
from coreason_relay.models import InboundRequest

# Never sent upstream: the end user's session cookie
SENSITIVE_REQUEST_HEADERS = {"cookie"}

# Recomputed by httpx from the actual outbound body
REQUEST_FRAMING_HEADERS = {
    "connection",
    "content-length",
    "transfer-encoding",
}

# The ASGI server frames the relayed body itself
RESPONSE_HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "transfer-encoding",
}


def build_header_map(items: Iterable[Tuple[str, str]]) -> httpx.Headers:
    """
    Builds an ordered, case-insensitive multimap from (name, value) pairs.
    Repeated names are kept as repeated entries. Empty values are dropped.
    Values are latin-1 so obs-text bytes (0x80-0xFF) pass through unchanged.
    """
    return httpx.Headers([(name, value) for name, value in items if value], encoding="latin-1")


def resolve_client_ip(inbound: InboundRequest) -> Optional[str]:
    """
    Resolves the originating client address.

    The first entry of ``X-Forwarded-For`` wins when present and non-empty,
    otherwise the transport-level peer address is used.
    """
    forwarded_for = inbound.headers.get("x-forwarded-for", "")
    first_hop = forwarded_for.split(",")[0].strip()
    if first_hop:
        return first_hop
    return inbound.client_address or None


def to_outbound_headers(inbound: InboundRequest, upstream_host: str, settings: RelaySettings) -> httpx.Headers:
    """
    Derives the upstream request headers from the inbound ones.

    Args:
        inbound: The request received from the client.
        upstream_host: The host selected for this request.
        settings: Relay settings (controls X-Forwarded-For handling).

    Returns:
        httpx.Headers: The outbound header multimap.
    """
    # 1. Copy everything, multi-value headers stay repeated
    headers = build_header_map(inbound.headers.multi_items())

    # 2. Virtual-hosted upstreams route on Host
    original_host = inbound.headers.get("host")
    headers["host"] = upstream_host

    # 3. Let the upstream recover the client-facing host
    if original_host:
        headers["X-Forwarded-Host"] = original_host

    # 4. Client identity
    client_ip = resolve_client_ip(inbound)
    if client_ip:
        headers["X-Real-IP"] = client_ip
        if settings.forwarded_for_mode == "append":
            headers["X-Forwarded-For"] = _append_forwarded_for(inbound)
        else:
            headers["X-Forwarded-For"] = client_ip

    # 5 & 6. Session cookie and connection framing never go upstream
    for name in SENSITIVE_REQUEST_HEADERS | REQUEST_FRAMING_HEADERS:
        headers.pop(name, None)

    return headers


def _append_forwarded_for(inbound: InboundRequest) -> str:
    chain = [hop.strip() for hop in inbound.headers.get("x-forwarded-for", "").split(",") if hop.strip()]
    if inbound.client_address:
        chain.append(inbound.client_address)
    return ", ".join(chain)


def to_client_headers(upstream_headers: httpx.Headers) -> httpx.Headers:
    """
    Derives the client-facing response headers from the upstream ones.

    httpx hands us the decoded body, so a declared content-encoding (and the
    length of the encoded payload) no longer describe it and are removed.
    """
    headers = upstream_headers.copy()

    if "content-encoding" in headers:
        del headers["content-encoding"]
        headers.pop("content-length", None)

    for name in RESPONSE_HOP_BY_HOP_HEADERS:
        headers.pop(name, None)

    return headers
