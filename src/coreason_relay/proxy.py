# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_relay

from typing import List, Optional

import anyio
import httpx
from fastapi import status
from fastapi.responses import JSONResponse, Response
from loguru import logger
from starlette.types import Receive

from coreason_relay.config import RelaySettings
from coreason_relay.exceptions import ClientDisconnectedError, UpstreamError
from coreason_relay.forwarder import RequestForwarder
from coreason_relay.headers import to_outbound_headers
from coreason_relay.logging_utils import scrub_sensitive_data
from coreason_relay.models import BODILESS_METHODS, InboundRequest, OutboundRequest, UpstreamResponse
from coreason_relay.relay import build_client_response
from coreason_relay.upstream import select_upstream_host

BAD_GATEWAY_BODY = {"error": "Bad gateway"}

# Not sent to anyone; the client is already gone
CLIENT_CLOSED_REQUEST = 499


def bad_gateway() -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=BAD_GATEWAY_BODY)


class ProxyService:
    """
    Reverse proxy for telemetry traffic.

    Selects the upstream host, rewrites headers, forwards the request once and
    relays the buffered response. This is the only component that produces the
    client-facing response; every forwarding failure becomes a 502.
    """

    def __init__(self, settings: RelaySettings, client: httpx.AsyncClient):
        self.settings = settings
        self.forwarder = RequestForwarder(client, settings)

    def prepare(self, inbound: InboundRequest) -> OutboundRequest:
        """Selects the upstream and builds the outbound request. Cannot fail."""
        host = select_upstream_host(inbound.path, self.settings)
        method = inbound.method.upper()
        return OutboundRequest(
            host=host,
            method=method,
            path=inbound.path,
            headers=to_outbound_headers(inbound, host, self.settings),
            body=None if method in BODILESS_METHODS else inbound.body,
        )

    async def handle(self, inbound: InboundRequest, receive: Optional[Receive] = None) -> Response:
        """
        Proxies one inbound request.

        Args:
            inbound: The request received under the mount prefix.
            receive: The ASGI receive channel of the inbound request, after its
                body has been read. When given (and enabled in settings) the
                outbound call is abandoned as soon as the client disconnects.

        Returns:
            Response: The relayed upstream response, or the 502 gateway error.
        """
        outbound = self.prepare(inbound)
        logger.info(f"[Relay] {outbound.method} {outbound.path} -> {outbound.url}")
        logger.debug(f"[Relay] Outbound headers: {scrub_sensitive_data(outbound.headers.multi_items())}")

        try:
            if receive is not None and self.settings.cancel_on_disconnect:
                upstream = await self._forward_until_disconnect(outbound, receive)
            else:
                upstream = await self.forwarder.forward(outbound)

            logger.info(f"[Relay] Response: {upstream.status_code}")
            return build_client_response(upstream, method=outbound.method)

        except ClientDisconnectedError:
            logger.bind(method=outbound.method, path=outbound.path).info(
                "[Relay] Client disconnected before upstream answered; outbound call cancelled."
            )
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        except UpstreamError as e:
            logger.bind(method=outbound.method, path=outbound.path).error(
                f"[Relay] {outbound.method} {outbound.path} failed: {e}"
            )
            return bad_gateway()
        except Exception as e:
            logger.bind(method=outbound.method, path=outbound.path).exception(
                f"[Relay] Unexpected error proxying {outbound.method} {outbound.path}: {e}"
            )
            return bad_gateway()

    async def _forward_until_disconnect(self, outbound: OutboundRequest, receive: Receive) -> UpstreamResponse:
        """
        Races the outbound call against an ``http.disconnect`` on the inbound
        channel. Whichever finishes first cancels the other.
        """
        answers: List[UpstreamResponse] = []
        failures: List[Exception] = []

        async with anyio.create_task_group() as task_group:

            async def forward() -> None:
                try:
                    answers.append(await self.forwarder.forward(outbound))
                except Exception as e:
                    failures.append(e)
                task_group.cancel_scope.cancel()

            task_group.start_soon(forward)
            await self._listen_for_disconnect(receive)
            task_group.cancel_scope.cancel()

        if failures:
            raise failures[0]
        # An answer that raced the disconnect still wins
        if answers:
            return answers[0]
        raise ClientDisconnectedError(f"Client went away during {outbound.method} {outbound.path}")

    @staticmethod
    async def _listen_for_disconnect(receive: Receive) -> None:
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                break
