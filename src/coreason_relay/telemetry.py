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
import platform
import threading

from opentelemetry import _logs, trace
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import (
    BatchLogRecordProcessor,
    ConsoleLogRecordExporter,
    SimpleLogRecordProcessor,
)
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)

from coreason_relay.logging_utils import configure_logging

_lock = threading.Lock()
_configured = False


def configure_telemetry(service_name: str = "coreason-relay") -> bool:
    """
    Configures global OpenTelemetry providers (Tracer and Logger) and Loguru.
    Uses environment variables for endpoint configuration.

    Global providers can only be set once per process, so later calls are no-ops.

    Returns:
        bool: True if this call performed the configuration.
    """
    global _configured
    with _lock:
        if _configured:
            return False

        resource = Resource.create(
            {
                "service.name": os.environ.get("OTEL_SERVICE_NAME", service_name),
                "deployment.environment": os.environ.get("APP_ENV", "production"),
                "host.name": platform.node(),
            }
        )
        test_mode = bool(os.environ.get("COREASON_RELAY_TEST_MODE"))

        tp = TracerProvider(resource=resource)
        if test_mode:
            # Synchronous console export, no collector needed
            tp.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        else:
            tp.add_span_processor(BatchSpanProcessor(OTLPSpanExporter()))
        trace.set_tracer_provider(tp)

        lp = LoggerProvider(resource=resource)
        if test_mode:
            lp.add_log_record_processor(SimpleLogRecordProcessor(ConsoleLogRecordExporter()))
        else:
            lp.add_log_record_processor(BatchLogRecordProcessor(OTLPLogExporter()))
        _logs.set_logger_provider(lp)

        configure_logging(logger_provider=lp)
        _configured = True
        return True


def reset_telemetry() -> None:
    """Forget that telemetry was configured. Intended for tests."""
    global _configured
    with _lock:
        _configured = False
