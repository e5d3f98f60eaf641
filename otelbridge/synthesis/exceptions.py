"""Reading ``exception`` span events."""

from __future__ import annotations

from typing import Any, Iterator, Mapping

from otelbridge.constants import EXCEPTION_MESSAGE, EXCEPTION_STACKTRACE, EXCEPTION_TYPE
from otelbridge.trace.errors import TracedError

EXCEPTION_EVENT = "exception"


def exception_message(attributes: Mapping[str, Any]) -> str | None:
    """``exception.message``, else ``exception.type``, else ``None``."""
    message = attributes.get(EXCEPTION_MESSAGE)
    if message:
        return str(message)
    exc_type = attributes.get(EXCEPTION_TYPE)
    return str(exc_type) if exc_type else None


def exception_stack(attributes: Mapping[str, Any]) -> str | None:
    stack = attributes.get(EXCEPTION_STACKTRACE)
    return str(stack) if stack else None


def errors_from_events(events: Any, segment_name: str) -> Iterator[TracedError]:
    """Yield a :class:`TracedError` for every ``exception`` event."""
    for event in events or ():
        if event.name != EXCEPTION_EVENT:
            continue
        attributes = dict(event.attributes or {})
        yield TracedError(
            message=exception_message(attributes) or f"Error from {segment_name}",
            type=attributes.get(EXCEPTION_TYPE),
            stack=exception_stack(attributes),
        )
