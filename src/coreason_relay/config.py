# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_relay

import os
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_API_HOST = "us.i.posthog.com"
DEFAULT_ASSET_HOST = "us-assets.i.posthog.com"
DEFAULT_MOUNT_PREFIX = "/api/v2/telemetry-q7x9p"
DEFAULT_BODY_LIMIT_BYTES = 10 * 1024 * 1024
DEFAULT_ALLOWED_ORIGIN_PATTERNS = [
    r"^http://localhost:\d+$",
    r"^https://.*\.lovable\.app$",
    r"^https://.*\.vercel\.app$",
    r"^https://crm\.ventaplay\.com$",
]

# Environment variable for each settings field
ENV_VARS: Dict[str, str] = {
    "api_host": "POSTHOG_API_HOST",
    "asset_host": "POSTHOG_ASSET_HOST",
    "mount_prefix": "POSTHOG_PREFIX",
    "body_limit_bytes": "RELAY_BODY_LIMIT_BYTES",
    "upstream_timeout": "RELAY_UPSTREAM_TIMEOUT",
    "rate_limit_max": "RELAY_RATE_LIMIT_MAX",
    "rate_limit_window_seconds": "RELAY_RATE_LIMIT_WINDOW",
    "trusted_proxy_hops": "RELAY_TRUSTED_PROXY_HOPS",
    "forwarded_for_mode": "RELAY_FORWARDED_FOR_MODE",
    "cancel_on_disconnect": "RELAY_CANCEL_ON_DISCONNECT",
    "allowed_origin_patterns": "RELAY_ALLOWED_ORIGINS",
    "environment": "APP_ENV",
    "host": "RELAY_HOST",
    "port": "RELAY_PORT",
}


class RelaySettings(BaseModel):
    """
    Process configuration for the relay.

    Built once at startup and handed to the application factory and the proxy
    service. Request handling never reads the environment directly.
    """

    model_config = ConfigDict(frozen=True)

    api_host: str = Field(DEFAULT_API_HOST, description="Upstream host for API calls")
    asset_host: str = Field(DEFAULT_ASSET_HOST, description="Upstream host for /static/ assets")
    mount_prefix: str = Field(DEFAULT_MOUNT_PREFIX, description="Path prefix the proxy is mounted under")
    body_limit_bytes: int = Field(DEFAULT_BODY_LIMIT_BYTES, gt=0)
    upstream_timeout: float = Field(30.0, gt=0)
    rate_limit_max: int = Field(100, gt=0)
    rate_limit_window_seconds: float = Field(60.0, gt=0)
    trusted_proxy_hops: int = Field(1, ge=0)
    forwarded_for_mode: Literal["replace", "append"] = "replace"
    cancel_on_disconnect: bool = True
    allowed_origin_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGIN_PATTERNS))
    environment: str = "production"
    host: str = "0.0.0.0"
    port: int = 8080

    @field_validator("api_host", "asset_host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        """Hosts are bare authorities; the scheme is always https."""
        v = v.strip()
        if not v:
            raise ValueError("Upstream host must not be empty")
        if "://" in v or "/" in v:
            raise ValueError(f"Upstream host must be a bare host name, got '{v}'")
        return v

    @field_validator("mount_prefix")
    @classmethod
    def validate_mount_prefix(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith("/"):
            raise ValueError(f"Mount prefix must start with '/', got '{v}'")
        v = v.rstrip("/")
        if not v:
            raise ValueError("Mount prefix must not be the root path")
        return v

    @field_validator("allowed_origin_patterns", mode="before")
    @classmethod
    def split_patterns(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [p.strip() for p in v.split(",") if p.strip()]
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RelaySettings":
        """
        Build settings from environment variables, falling back to defaults
        for anything unset.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Returns:
            RelaySettings: The validated settings.
        """
        env = os.environ if environ is None else environ
        values = {field: env[var] for field, var in ENV_VARS.items() if var in env}
        return cls(**values)
