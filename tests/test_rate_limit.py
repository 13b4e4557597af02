# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_relay

from typing import Callable, List

import pytest

from coreason_relay.models import InboundRequest
from coreason_relay.rate_limit import FixedWindowRateLimiter, rate_limit_key


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_allows_up_to_limit_then_rejects() -> None:
    limiter = FixedWindowRateLimiter(limit=3, window_seconds=60, clock=FakeClock())

    decisions = [limiter.hit("1.2.3.4") for _ in range(4)]

    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert [d.remaining for d in decisions] == [2, 1, 0, 0]


def test_keys_are_independent() -> None:
    limiter = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=FakeClock())
    assert limiter.hit("a").allowed
    assert not limiter.hit("a").allowed
    assert limiter.hit("b").allowed


def test_window_resets() -> None:
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=clock)
    assert limiter.hit("a").allowed
    assert not limiter.hit("a").allowed

    clock.now += 60
    decision = limiter.hit("a")
    assert decision.allowed
    assert decision.reset_after == pytest.approx(60)


def test_expired_windows_are_pruned() -> None:
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(limit=5, window_seconds=10, clock=clock)
    for key in ("a", "b", "c"):
        limiter.hit(key)
    assert len(limiter) == 3

    clock.now += 11
    limiter.hit("d")
    assert len(limiter) == 1


def test_reset_clears_all_windows() -> None:
    limiter = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=FakeClock())
    limiter.hit("a")
    limiter.reset()
    assert limiter.hit("a").allowed


def test_standard_headers() -> None:
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(limit=2, window_seconds=60, clock=clock)
    limiter.hit("a")
    clock.now += 15.5

    headers = limiter.hit("a").headers()
    assert headers == {
        "RateLimit-Policy": "2;w=60",
        "RateLimit-Limit": "2",
        "RateLimit-Remaining": "0",
        "RateLimit-Reset": "45",
    }

    rejected = limiter.hit("a").headers()
    assert rejected["Retry-After"] == "45"


@pytest.mark.parametrize("limit, window", [(0, 60), (10, 0), (-1, 5)])  # type: ignore[misc]
def test_invalid_configuration(limit: int, window: float) -> None:
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(limit=limit, window_seconds=window)


def test_key_behind_one_trusted_proxy(make_inbound: Callable[..., InboundRequest]) -> None:
    inbound = make_inbound(headers=[("x-forwarded-for", "6.6.6.6, 1.2.3.4")], client_address="10.0.0.2")
    assert rate_limit_key(inbound, trusted_hops=1) == "1.2.3.4"


def test_key_behind_two_trusted_proxies(make_inbound: Callable[..., InboundRequest]) -> None:
    inbound = make_inbound(headers=[("x-forwarded-for", "6.6.6.6, 1.2.3.4, 10.0.0.3")], client_address="10.0.0.2")
    assert rate_limit_key(inbound, trusted_hops=2) == "1.2.3.4"


def test_key_ignores_forwarded_for_without_trusted_proxies(make_inbound: Callable[..., InboundRequest]) -> None:
    inbound = make_inbound(headers=[("x-forwarded-for", "6.6.6.6")], client_address="10.0.0.2")
    assert rate_limit_key(inbound, trusted_hops=0) == "10.0.0.2"


def test_key_falls_back_to_peer_and_unknown(make_inbound: Callable[..., InboundRequest]) -> None:
    assert rate_limit_key(make_inbound(client_address="10.0.0.2")) == "10.0.0.2"
    assert rate_limit_key(make_inbound(client_address=None)) == "unknown"


def test_short_chain_uses_leftmost_entry(make_inbound: Callable[..., InboundRequest]) -> None:
    inbound = make_inbound(headers=[("x-forwarded-for", "1.2.3.4")])
    results: List[str] = [rate_limit_key(inbound, trusted_hops=hops) for hops in (1, 3)]
    assert results == ["1.2.3.4", "1.2.3.4"]
