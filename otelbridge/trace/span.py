"""Span helpers and the records copied from spans onto segments.

Spans themselves are OpenTelemetry SDK objects; this module only reads
them. :func:`span_from_dict` rebuilds a finished ``ReadableSpan`` from a
JSON document so offline tooling can replay spans through the processor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from opentelemetry.sdk.trace import Event, ReadableSpan
from opentelemetry.sdk.util.instrumentation import InstrumentationScope
from opentelemetry.trace import Link, SpanContext, SpanKind, Status, StatusCode


@dataclass
class TimedEvent:
    """A span event copied onto a segment."""

    name: str
    timestamp: int | None = None
    attributes: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "timestamp": self.timestamp,
            "attributes": self.attributes,
        }


@dataclass
class SpanLinkRecord:
    """A span link copied onto a segment."""

    trace_id: str
    span_id: str
    timestamp: int | None = None
    attributes: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "trace_id": self.trace_id,
            "span_id": self.span_id,
            "timestamp": self.timestamp,
            "attributes": self.attributes,
        }


# ------------------------------------------------------------------
# Reading SDK spans
# ------------------------------------------------------------------


def trace_id_hex(span_context: SpanContext | None) -> str | None:
    if span_context is None:
        return None
    return format(span_context.trace_id, "032x")


def span_id_hex(span_context: SpanContext | None) -> str | None:
    if span_context is None:
        return None
    return format(span_context.span_id, "016x")


def span_key(span_context: SpanContext | None) -> tuple[int, int] | None:
    """Key identifying a span within the process."""
    if span_context is None:
        return None
    return (span_context.trace_id, span_context.span_id)


def span_attributes(span: Any) -> dict[str, Any]:
    attrs = getattr(span, "attributes", None)
    return dict(attrs) if attrs else {}


def kind_name(span: Any) -> str:
    """Lower-case span kind, e.g. ``"server"``."""
    kind = getattr(span, "kind", None) or SpanKind.INTERNAL
    return kind.name.lower()


def duration_ms(span: Any) -> float | None:
    start = getattr(span, "start_time", None)
    end = getattr(span, "end_time", None)
    if start is None or end is None:
        return None
    return (end - start) / 1e6


# ------------------------------------------------------------------
# Rebuilding spans from JSON
# ------------------------------------------------------------------

_KINDS = {k.name.lower(): k for k in SpanKind}
_STATUS = {"unset": StatusCode.UNSET, "ok": StatusCode.OK, "error": StatusCode.ERROR}


def _parse_id(value: Any, width: int) -> int:
    if isinstance(value, int):
        return value
    text = str(value)
    if len(text) > width:
        raise ValueError(f"id {text!r} is longer than {width} hex digits")
    return int(text, 16)


def _context(data: dict[str, Any]) -> SpanContext:
    return SpanContext(
        trace_id=_parse_id(data["trace_id"], 32),
        span_id=_parse_id(data["span_id"], 16),
        is_remote=bool(data.get("is_remote", False)),
    )


def span_from_dict(data: dict[str, Any]) -> ReadableSpan:
    """Build a finished :class:`ReadableSpan` from a ``span`` document.

    Ids are hex strings (or ints). ``kind`` and ``status.code`` are
    case-insensitive names. Times are nanoseconds; ``duration_ms`` may be
    given instead of ``end_time``.
    """
    context = _context(data)
    parent = None
    if data.get("parent_span_id"):
        parent = SpanContext(
            trace_id=context.trace_id,
            span_id=_parse_id(data["parent_span_id"], 16),
            is_remote=bool(data.get("parent_is_remote", False)),
        )

    status_data = data.get("status") or {}
    code = _STATUS[str(status_data.get("code", "unset")).lower()]
    # The SDK only keeps a description on error statuses.
    status = Status(code, status_data.get("message") if code is StatusCode.ERROR else None)

    start = int(data.get("start_time", 0))
    if "end_time" in data:
        end = int(data["end_time"])
    else:
        end = start + int(float(data.get("duration_ms", 0)) * 1e6)

    events = [
        Event(e["name"], attributes=e.get("attributes") or {}, timestamp=e.get("timestamp"))
        for e in data.get("events", [])
    ]
    links = [
        Link(_context(link), attributes=link.get("attributes") or {})
        for link in data.get("links", [])
    ]

    scope = None
    scope_data = data.get("instrumentation_scope")
    if scope_data:
        scope = InstrumentationScope(scope_data["name"], scope_data.get("version"))

    return ReadableSpan(
        name=data["name"],
        context=context,
        parent=parent,
        attributes=data.get("attributes") or {},
        events=events,
        links=links,
        kind=_KINDS[str(data.get("kind", "internal")).lower()],
        status=status,
        start_time=start,
        end_time=end,
        instrumentation_scope=scope,
    )
