# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_relay


class RelayError(Exception):
    """Base exception for all Relay errors."""

    pass


class UpstreamError(RelayError):
    """Raised when the single outbound call to the upstream fails."""

    pass


class UpstreamUnreachableError(UpstreamError):
    """Raised when the upstream host cannot be reached (DNS, connect, TLS)."""

    pass


class UpstreamTransportError(UpstreamError):
    """Raised on any other failure while sending the request or reading the response."""

    pass


class MalformedResponseError(UpstreamTransportError):
    """Raised when the upstream response cannot be parsed or decoded."""

    pass


class PayloadTooLargeError(RelayError):
    """Raised when a request body exceeds the configured body limit."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Request body of {size} bytes exceeds limit of {limit} bytes")


class ClientDisconnectedError(RelayError):
    """Raised when the inbound client goes away before the upstream responds."""

    pass
