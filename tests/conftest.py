# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_relay

from typing import Callable, Generator, List, Optional, Sequence, Tuple
from unittest.mock import patch

import httpx
import pytest

from coreason_relay.config import RelaySettings
from coreason_relay.models import InboundRequest

API_HOST = "api.upstream.test"
ASSET_HOST = "assets.upstream.test"
PREFIX = "/api/v2/telemetry-q7x9p"


@pytest.fixture(autouse=True)  # type: ignore[misc]
def set_test_mode() -> Generator[None, None, None]:
    """
    Force console exporters for OpenTelemetry and disable the log file sink,
    so tests never talk to a collector or write to logs/.
    """
    with patch.dict("os.environ", {"COREASON_RELAY_TEST_MODE": "true", "LOG_FILE": ""}):
        yield


@pytest.fixture  # type: ignore[misc]
def settings() -> RelaySettings:
    return RelaySettings(api_host=API_HOST, asset_host=ASSET_HOST, mount_prefix=PREFIX)


@pytest.fixture  # type: ignore[misc]
def make_inbound() -> Callable[..., InboundRequest]:
    def _make(
        method: str = "GET",
        path: str = "/e/",
        headers: Optional[Sequence[Tuple[str, str]]] = None,
        body: bytes = b"",
        client_address: Optional[str] = "10.0.0.9",
    ) -> InboundRequest:
        return InboundRequest(
            method=method,
            path=path,
            headers=httpx.Headers(list(headers or [])),
            body=body,
            client_address=client_address,
        )

    return _make


class UpstreamRecorder:
    """
    Fake upstream behind an httpx.MockTransport.
    Records every request it receives and answers with a configurable response.
    """

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.response_factory: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(
            200, json={"status": 1}
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response_factory(request)

    @property
    def last(self) -> httpx.Request:
        assert self.requests, "upstream was never called"
        return self.requests[-1]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture  # type: ignore[misc]
def upstream() -> UpstreamRecorder:
    return UpstreamRecorder()
