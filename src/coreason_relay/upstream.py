# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_relay

from coreason_relay.config import RelaySettings

ASSET_PATH_PREFIX = "/static/"


def select_upstream_host(path: str, settings: RelaySettings) -> str:
    """
    Picks the upstream host for a request path.

    Paths under ``/static/`` go to the asset host, everything else
    (including a bare ``/static``) goes to the API host.
    """
    if path.startswith(ASSET_PATH_PREFIX):
        return settings.asset_host
    return settings.api_host
