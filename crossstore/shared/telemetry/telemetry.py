"""OpenTelemetry tracing setup for processes embedding crossstore.

Console exporter for local development, OTLP gRPC for collectors. The
instrumented clients are the ones crossstore drives: Redis, the SQLAlchemy
engine, and stdlib logging (trace ids on records).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SpanExporter,
)
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from crossstore.core.config import Settings

logger = logging.getLogger(__name__)


class TelemetryConfig:
    """Tracer provider lifecycle for one process (owned by CoreRegistry)."""

    def __init__(
        self,
        service_name: str,
        service_version: str,
        enabled: bool = True,
        environment: str = "development",
    ) -> None:
        self.service_name = service_name
        self.service_version = service_version
        self.enabled = enabled
        self.environment = environment
        self.tracer_provider: TracerProvider | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> TelemetryConfig:
        return cls(
            service_name=settings.app_name,
            service_version=settings.app_version,
            enabled=settings.telemetry_enabled,
            environment=settings.environment,
        )

    def _build_exporter(self, exporter_type: str, otlp_endpoint: str | None) -> SpanExporter | None:
        if exporter_type == "none":
            return None
        if exporter_type == "otlp" and otlp_endpoint:
            logger.info("Using OTLP span exporter: %s", otlp_endpoint)
            return OTLPSpanExporter(
                endpoint=otlp_endpoint, insecure=otlp_endpoint.startswith("http://")
            )
        if exporter_type != "console":
            logger.warning("Unknown exporter type '%s', using console", exporter_type)
        return ConsoleSpanExporter()

    def setup_telemetry(
        self,
        exporter_type: str = "console",
        otlp_endpoint: str | None = None,
        sample_rate: float = 1.0,
    ) -> TracerProvider | None:
        """Create the tracer provider and install it globally.

        Args:
            exporter_type: "console", "otlp", or "none" (spans are sampled but not exported).
            otlp_endpoint: OTLP gRPC endpoint, e.g. http://localhost:4317.
            sample_rate: Fraction of traces sampled, 0.0-1.0.

        Returns:
            The provider, or None when disabled or setup failed. Tracing
            failures never stop the process.
        """
        if not self.enabled:
            logger.info("Telemetry disabled")
            return None
        try:
            provider = TracerProvider(
                resource=Resource(
                    attributes={
                        SERVICE_NAME: self.service_name,
                        SERVICE_VERSION: self.service_version,
                        "deployment.environment": self.environment,
                    }
                ),
                sampler=TraceIdRatioBased(sample_rate),
            )
            exporter = self._build_exporter(exporter_type, otlp_endpoint)
            if exporter is not None:
                provider.add_span_processor(BatchSpanProcessor(exporter))
            trace.set_tracer_provider(provider)
        except Exception:
            logger.exception("Failed to initialize telemetry")
            return None
        self.tracer_provider = provider
        logger.info(
            "OpenTelemetry initialized: service=%s, version=%s, exporter=%s",
            self.service_name,
            self.service_version,
            exporter_type,
        )
        return provider

    def instrument(self, engine: AsyncEngine | None = None) -> None:
        """Instrument Redis, logging, and (when given) the SQLAlchemy engine.

        Each instrumentor is independent; one failing is logged and skipped.
        """
        if not self.enabled or self.tracer_provider is None:
            return
        provider = self.tracer_provider
        steps = [
            ("Redis", lambda: RedisInstrumentor().instrument(tracer_provider=provider)),
            (
                "logging",
                lambda: LoggingInstrumentor().instrument(
                    tracer_provider=provider, set_logging_format=True
                ),
            ),
        ]
        if engine is not None:
            steps.append(
                (
                    "SQLAlchemy",
                    lambda: SQLAlchemyInstrumentor().instrument(
                        engine=engine.sync_engine, tracer_provider=provider
                    ),
                )
            )
        for label, step in steps:
            try:
                step()
            except Exception:
                logger.exception("Failed to instrument %s", label)
            else:
                logger.info("%s instrumentation enabled", label)

    def shutdown(self) -> None:
        """Flush remaining spans and shut the provider down."""
        if self.tracer_provider is None:
            return
        try:
            self.tracer_provider.shutdown()
        except Exception:
            logger.exception("Error during telemetry shutdown")
        self.tracer_provider = None


def get_tracer(name: str) -> trace.Tracer:
    """Return a tracer for custom spans (e.g. get_tracer(__name__))."""
    return trace.get_tracer(name)
