"""Tracing helpers for storage operations.

Uses the OpenTelemetry API only; spans are no-ops until the host
process installs a tracer provider.
"""

from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

T = TypeVar("T")

# Keyword arguments recorded as span attributes. Bodies, metadata and
# credentials never are.
_SAFE_SPAN_ATTR_KEYS = frozenset({"content_type", "kind", "mode", "attempt"})


def traced(
    operation_name: str,
    attributes: dict[str, str | int | float | bool] | None = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Wrap an async storage method in a span named ``operation_name``.

    The first positional argument after ``self`` is recorded as
    ``storage.key`` when it is a string. Errors mark the span and re-raise.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        tracer = trace.get_tracer(__name__)

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            with tracer.start_as_current_span(operation_name) as span:
                for name, value in (attributes or {}).items():
                    span.set_attribute(name, value)
                if len(args) > 1 and isinstance(args[1], str):
                    span.set_attribute("storage.key", args[1])
                for name, value in kwargs.items():
                    if name in _SAFE_SPAN_ATTR_KEYS:
                        span.set_attribute(f"arg.{name}", str(value))
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    span.record_exception(e)
                    raise
                span.set_status(Status(StatusCode.OK))
                return result

        return wrapper

    return decorator


def add_span_attributes(**attributes: str | int | float | bool) -> None:
    """Add attributes to the current span."""
    span = trace.get_current_span()
    if span.is_recording():
        for key, value in attributes.items():
            span.set_attribute(key, value)


def add_span_event(name: str, attributes: dict | None = None) -> None:
    """Record a pipeline stage boundary on the current span."""
    span = trace.get_current_span()
    if span.is_recording():
        span.add_event(name, attributes=attributes or {})
