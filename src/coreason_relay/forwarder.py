# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_relay

from http.cookiejar import CookieJar, DefaultCookiePolicy
from typing import Optional

import httpx
from loguru import logger

from coreason_relay.config import RelaySettings
from coreason_relay.exceptions import (
    MalformedResponseError,
    PayloadTooLargeError,
    UpstreamTransportError,
    UpstreamUnreachableError,
)
from coreason_relay.models import OutboundRequest, UpstreamResponse


def create_upstream_client(
    settings: RelaySettings, transport: Optional[httpx.AsyncBaseTransport] = None
) -> httpx.AsyncClient:
    """
    Creates the shared upstream client.

    The client never stores cookies: a set-cookie from the upstream must not
    be replayed on another user's request.
    """
    cookie_jar = CookieJar(policy=DefaultCookiePolicy(allowed_domains=[]))
    if transport is not None:
        return httpx.AsyncClient(timeout=settings.upstream_timeout, cookies=cookie_jar, transport=transport)
    return httpx.AsyncClient(timeout=settings.upstream_timeout, cookies=cookie_jar)


class RequestForwarder:
    """
    Issues exactly one outbound call per inbound request.
    No retries; redirects are left to httpx defaults (not followed).
    """

    def __init__(self, client: httpx.AsyncClient, settings: RelaySettings):
        """
        Args:
            client: The shared HTTPX client.
            settings: Relay settings (timeout and body limit).
        """
        self.client = client
        self.settings = settings

    async def forward(self, outbound: OutboundRequest) -> UpstreamResponse:
        """
        Sends the outbound request and buffers the full, decoded response.

        Args:
            outbound: The prepared upstream request.

        Returns:
            UpstreamResponse: Status, headers and decoded body from the upstream.

        Raises:
            UpstreamUnreachableError: DNS, connect or TLS failure.
            MalformedResponseError: The response could not be parsed or decoded.
            UpstreamTransportError: Any other transport failure, including timeouts.
            PayloadTooLargeError: The body exceeds the configured limit.
        """
        if outbound.body is not None and len(outbound.body) > self.settings.body_limit_bytes:
            raise PayloadTooLargeError(len(outbound.body), self.settings.body_limit_bytes)

        request = self.client.build_request(
            method=outbound.method,
            url=outbound.url,
            headers=outbound.headers,
            content=outbound.body,
            timeout=self.settings.upstream_timeout,
        )

        try:
            # Non-streaming send reads (and decodes) the body before returning
            response = await self.client.send(request)
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            raise UpstreamUnreachableError(f"Cannot reach {outbound.host}: {e!r}") from e
        except (httpx.RemoteProtocolError, httpx.DecodingError) as e:
            raise MalformedResponseError(f"Malformed response from {outbound.host}: {e!r}") from e
        except httpx.HTTPError as e:
            raise UpstreamTransportError(f"Transport failure talking to {outbound.host}: {e!r}") from e

        logger.debug(f"Upstream {outbound.host} answered {response.status_code} ({len(response.content)} bytes)")

        return UpstreamResponse(
            status_code=response.status_code,
            headers=response.headers,
            body=response.content,
        )
