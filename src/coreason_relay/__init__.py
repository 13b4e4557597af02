# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_relay

"""
CoReason Relay: ingress service that reverse-proxies telemetry traffic to PostHog.
"""

__version__ = "0.1.0"

from coreason_relay.config import RelaySettings
from coreason_relay.exceptions import (
    ClientDisconnectedError,
    MalformedResponseError,
    PayloadTooLargeError,
    RelayError,
    UpstreamError,
    UpstreamTransportError,
    UpstreamUnreachableError,
)
from coreason_relay.models import InboundRequest, OutboundRequest, UpstreamResponse
from coreason_relay.proxy import ProxyService
from coreason_relay.rate_limit import FixedWindowRateLimiter, RateLimitDecision

__all__ = [
    "__version__",
    "ClientDisconnectedError",
    "FixedWindowRateLimiter",
    "InboundRequest",
    "MalformedResponseError",
    "OutboundRequest",
    "PayloadTooLargeError",
    "ProxyService",
    "RateLimitDecision",
    "RelayError",
    "RelaySettings",
    "UpstreamError",
    "UpstreamResponse",
    "UpstreamTransportError",
    "UpstreamUnreachableError",
]
