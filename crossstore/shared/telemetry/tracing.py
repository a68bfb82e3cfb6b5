"""Span helpers: the @traced decorator, span attributes/events, TracedOperation."""

import asyncio
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from functools import wraps
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

# Only these kwarg names are copied onto spans (case-insensitive); cached
# payloads and records never are.
_SAFE_SPAN_ATTR_KEYS = frozenset({
    "canonical_id", "entity_type", "key", "ttl_seconds", "direction",
    "page_size", "start_offset", "service", "purpose",
})


def _mark_failed(span: trace.Span, exc: BaseException) -> None:
    span.set_status(Status(StatusCode.ERROR, str(exc)))
    span.record_exception(exc)


@contextmanager
def _operation_span(
    tracer: trace.Tracer,
    name: str,
    static_attributes: dict | None,
    call_kwargs: dict[str, Any],
) -> Iterator[trace.Span]:
    """Current span for one call: ERROR plus the exception on failure, else OK."""
    with tracer.start_as_current_span(
        name, record_exception=False, set_status_on_exception=False
    ) as span:
        for key, value in (static_attributes or {}).items():
            span.set_attribute(key, value)
        for key, value in call_kwargs.items():
            if not key.startswith("_") and key.lower() in _SAFE_SPAN_ATTR_KEYS:
                span.set_attribute(f"arg.{key}", str(value))
        try:
            yield span
        except Exception as e:
            _mark_failed(span, e)
            raise
        span.set_status(Status(StatusCode.OK))


def traced(
    operation_name: str | None = None,
    attributes: dict | None = None,
) -> Callable:
    """Decorator to create a span for a function (sync or async).

    Args:
        operation_name: Span name (defaults to module.funcname).
        attributes: Optional dict of static attributes to set on the span.
    """

    def decorator(func: Callable) -> Callable:
        tracer = trace.get_tracer(__name__)
        span_name = operation_name or f"{func.__module__}.{func.__name__}"

        if asyncio.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                with _operation_span(tracer, span_name, attributes, kwargs):
                    return await func(*args, **kwargs)

            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with _operation_span(tracer, span_name, attributes, kwargs):
                return func(*args, **kwargs)

        return sync_wrapper

    return decorator


def add_span_attributes(**attributes: str | int | float | bool) -> None:
    """Add attributes to the current span."""
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attributes(attributes)


def add_span_event(name: str, attributes: dict | None = None) -> None:
    """Add an event to the current span."""
    span = trace.get_current_span()
    if span.is_recording():
        span.add_event(name, attributes=attributes or {})


class TracedOperation:
    """Async context manager wrapping a block (e.g. a lock hold) in its own span."""

    def __init__(self, operation_name: str, attributes: dict | None = None) -> None:
        self.operation_name = operation_name
        self.attributes = attributes or {}
        self.span: trace.Span | None = None

    async def __aenter__(self) -> "TracedOperation":
        self.span = trace.get_tracer(__name__).start_span(
            self.operation_name, attributes=self.attributes
        )
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        if self.span is None:
            return
        if exc_val is None:
            self.span.set_status(Status(StatusCode.OK))
        else:
            _mark_failed(self.span, exc_val)
        self.span.end()
