# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_relay

import logging
import os
import sys
from datetime import datetime
from types import FrameType
from typing import Any, Dict, Optional

from loguru import logger
from opentelemetry import trace
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler

# Keys redacted before headers or payloads hit the logs
SENSITIVE_KEYS = {
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "password",
    "token",
    "secret",
    "api_key",
}

_extra_keys = os.environ.get("RELAY_SENSITIVE_KEYS", "")
if _extra_keys:
    SENSITIVE_KEYS.update(k.strip().lower() for k in _extra_keys.split(",") if k.strip())


def scrub_sensitive_data(
    data: Any,
    depth: int = 0,
    max_depth: int = 20,
    seen: Optional[Dict[int, Any]] = None,
) -> Any:
    """
    Recursively scrubs sensitive keys from dictionaries, lists and tuples.
    Returns a new structure with redacted values.

    Header pair lists (``[(name, value), ...]``) are scrubbed by name too,
    so ``headers.multi_items()`` can be logged directly.
    """
    if seen is None:
        seen = {}

    if depth > max_depth:
        return "[TRUNCATED_DEPTH]"

    obj_id = id(data)
    if obj_id in seen:
        return "[CIRCULAR_REF]"

    if isinstance(data, (dict, list, tuple)):
        seen[obj_id] = data

    if isinstance(data, dict):
        new_dict = {}
        for k, v in data.items():
            if isinstance(k, str) and k.lower() in SENSITIVE_KEYS:
                new_dict[k] = "[REDACTED]"
            else:
                new_dict[k] = scrub_sensitive_data(v, depth + 1, max_depth, seen)
        return new_dict
    elif isinstance(data, tuple):
        if len(data) == 2 and isinstance(data[0], str) and data[0].lower() in SENSITIVE_KEYS:
            return (data[0], "[REDACTED]")
        return tuple(scrub_sensitive_data(item, depth + 1, max_depth, seen) for item in data)
    elif isinstance(data, list):
        return [scrub_sensitive_data(item, depth + 1, max_depth, seen) for item in data]
    else:
        return data


def format_access_log(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    client: str = "-",
    user_agent: str = "-",
    referrer: str = "-",
    content_length: str = "-",
    development: bool = False,
) -> str:
    """
    Formats one access log line.

    Development gets the short ``dev`` style, everything else the Apache
    ``combined`` style that log shippers already understand.
    """
    if development:
        return f"{method} {path} {status_code} {duration_ms:.3f} ms - {content_length}"

    timestamp = datetime.now().astimezone().strftime("%d/%b/%Y:%H:%M:%S %z")
    return (
        f'{client} - - [{timestamp}] "{method} {path} HTTP/1.1" {status_code} {content_length} '
        f'"{referrer}" "{user_agent}"'
    )


def _trace_context_patcher(record: Dict[str, Any]) -> None:
    """
    Loguru patcher to inject trace_id and span_id into extra.
    """
    span = trace.get_current_span()
    if not span:
        return

    ctx = span.get_span_context()
    if ctx.is_valid:
        record["extra"]["trace_id"] = f"{ctx.trace_id:032x}"
        record["extra"]["span_id"] = f"{ctx.span_id:016x}"
    else:
        record["extra"]["trace_id"] = "0" * 32
        record["extra"]["span_id"] = "0" * 16


class InterceptHandler(logging.Handler):
    """
    Intercept standard logging messages (uvicorn, httpx) and redirect them to Loguru.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = str(record.levelno)

        # Find caller from where originated the logged message
        frame: Optional[FrameType] = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(logger_provider: Optional[LoggerProvider] = None) -> None:
    """
    Configures Loguru with:
    1. Console sink (Text or JSON, from LOG_FORMAT)
    2. File sink (JSON with rotation, from LOG_FILE; empty disables it)
    3. OpenTelemetry sink
    4. Trace context patcher
    5. Standard library logging interception

    Args:
        logger_provider: Optional OTel LoggerProvider.
    """
    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    log_format = os.environ.get("LOG_FORMAT", "TEXT").upper()
    log_file = os.environ.get("LOG_FILE", "logs/app.log")

    logger.remove()

    if log_format == "JSON":
        logger.add(sys.stderr, level=log_level, serialize=True)
    else:
        fmt = (
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "trace_id={extra[trace_id]} span_id={extra[span_id]} | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        )
        logger.add(sys.stderr, level=log_level, format=fmt)

    if log_file:
        logger.add(log_file, rotation="500 MB", retention="10 days", serialize=True, enqueue=True, level=log_level)

    if logger_provider:
        otel_handler = LoggingHandler(logger_provider=logger_provider, level=logging.NOTSET)
        logger.add(otel_handler, level=log_level)

    logger.configure(patcher=_trace_context_patcher)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
