# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_relay

from fastapi.responses import Response

from coreason_relay.headers import to_client_headers
from coreason_relay.models import UpstreamResponse


def _allows_body(status_code: int) -> bool:
    return not (status_code < 200 or status_code in (204, 304))


def build_client_response(upstream: UpstreamResponse, method: str = "GET") -> Response:
    """
    Turns a buffered upstream response into the client-facing response.

    Status and body are relayed as-is. Headers go through the response-side
    translation, multi-value headers (e.g. set-cookie) stay repeated, and a
    content-length matching the relayed body is added when none survived.
    HEAD answers carry no body, so their length is never recomputed.
    """
    headers = to_client_headers(upstream.headers)

    response = Response(content=upstream.body, status_code=upstream.status_code)

    raw_headers = [(name.lower(), value) for name, value in headers.raw]
    if "content-length" not in headers and method != "HEAD" and _allows_body(upstream.status_code):
        raw_headers.append((b"content-length", str(len(upstream.body)).encode("latin-1")))

    response.raw_headers[:] = raw_headers
    return response
