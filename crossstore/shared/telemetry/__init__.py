"""Shared telemetry: logging setup, OpenTelemetry config, and tracing helpers."""

from crossstore.shared.telemetry.logging import get_logger, setup_logging
from crossstore.shared.telemetry.telemetry import TelemetryConfig, get_tracer
from crossstore.shared.telemetry.tracing import (
    TracedOperation,
    add_span_attributes,
    add_span_event,
    traced,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "TelemetryConfig",
    "get_tracer",
    "traced",
    "add_span_attributes",
    "add_span_event",
    "TracedOperation",
]
