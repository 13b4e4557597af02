# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_relay

from fastapi import FastAPI, Request, Response
from fastapi.testclient import TestClient

from coreason_relay.cors import OriginPolicy, PolicyCORSMiddleware

PATTERNS = [r"^http://localhost:\d+$", r"^https://.*\.vercel\.app$"]


def _app(predicate: OriginPolicy) -> FastAPI:
    app = FastAPI()
    app.add_middleware(PolicyCORSMiddleware, origin_predicate=predicate)

    @app.get("/ping")  # type: ignore[misc]
    async def ping() -> dict:
        return {"pong": True}

    return app


def test_origin_policy_matches_patterns() -> None:
    policy = OriginPolicy(PATTERNS)
    assert policy("http://localhost:5173")
    assert policy("https://preview-123.vercel.app")
    assert not policy("https://evil.example.com")
    assert not policy("http://localhost:5173.evil.com")


def test_missing_origin_is_allowed() -> None:
    policy = OriginPolicy(PATTERNS)
    assert policy(None)
    assert policy("")


def test_allowed_origin_is_echoed_with_credentials() -> None:
    client = TestClient(_app(OriginPolicy(PATTERNS)))
    response = client.get("/ping", headers={"Origin": "http://localhost:3000"})

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
    assert response.headers["access-control-allow-credentials"] == "true"


def test_blocked_origin_gets_no_allow_origin() -> None:
    client = TestClient(_app(OriginPolicy(PATTERNS)))
    response = client.get("/ping", headers={"Origin": "https://evil.example.com"})

    assert response.status_code == 200
    assert "access-control-allow-origin" not in response.headers


def test_preflight_allowed_and_blocked() -> None:
    client = TestClient(_app(OriginPolicy(PATTERNS)))
    preflight = {"Access-Control-Request-Method": "POST", "Access-Control-Request-Headers": "content-type"}

    ok = client.options("/ping", headers={"Origin": "http://localhost:3000", **preflight})
    assert ok.status_code == 200
    assert ok.headers["access-control-allow-origin"] == "http://localhost:3000"

    blocked = client.options("/ping", headers={"Origin": "https://evil.example.com", **preflight})
    assert blocked.status_code == 400


def test_any_callable_can_be_the_predicate() -> None:
    app = FastAPI()
    app.add_middleware(PolicyCORSMiddleware, origin_predicate=lambda origin: origin.endswith(".coreason.ai"))

    @app.get("/ping")  # type: ignore[misc]
    async def ping() -> dict:
        return {}

    response = TestClient(app).get("/ping", headers={"Origin": "https://app.coreason.ai"})
    assert response.headers["access-control-allow-origin"] == "https://app.coreason.ai"


def test_blocked_origin_loses_cors_headers_set_downstream() -> None:
    app = FastAPI()
    app.add_middleware(PolicyCORSMiddleware, origin_predicate=OriginPolicy(PATTERNS))

    @app.get("/echo")  # type: ignore[misc]
    async def echo(request: Request) -> Response:
        origin = request.headers.get("origin", "")
        return Response(
            b"{}",
            headers={
                "Access-Control-Allow-Origin": origin,
                "Access-Control-Allow-Credentials": "true",
                "Access-Control-Expose-Headers": "x-ph-trace",
            },
        )

    client = TestClient(app)
    blocked = client.get("/echo", headers={"Origin": "https://evil.example.com"})
    allowed = client.get("/echo", headers={"Origin": "http://localhost:3000"})

    assert blocked.status_code == 200
    assert not [name for name in blocked.headers if name.lower().startswith("access-control-")]
    assert "Origin" in blocked.headers["vary"]
    assert allowed.headers["access-control-allow-origin"] == "http://localhost:3000"
