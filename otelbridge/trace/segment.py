"""Trace segments: the timed nodes of a transaction's trace tree."""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING, Any, Callable, Iterator

from otelbridge.trace.attributes import DEFAULT_VALUE_LIMIT, Destination, TraceAttributes
from otelbridge.trace.span import SpanLinkRecord, TimedEvent

if TYPE_CHECKING:
    from otelbridge.metrics.recorders import MetricAggregator
    from otelbridge.trace.transaction import Transaction

#: ``recorder(segment, scope, metrics)`` turns a finished segment into metrics.
Recorder = Callable[["Segment", "str | None", "MetricAggregator"], None]


class Segment:
    """One unit of work inside a transaction.

    A segment has exactly one parent and belongs to exactly one
    transaction. Agent attributes go to the ``segment`` destination,
    raw span attributes to ``span``.
    """

    def __init__(
        self,
        name: str,
        *,
        id: str | None = None,
        parent: Segment | None = None,
        transaction: Transaction | None = None,
        recorder: Recorder | None = None,
        value_limit: int = DEFAULT_VALUE_LIMIT,
    ) -> None:
        self.id = id or uuid.uuid4().hex[:16]
        self.name = name
        self.partial_name: str | None = None
        self.parent = parent
        self.transaction = transaction if transaction is not None else getattr(parent, "transaction", None)
        self.recorder = recorder
        self.children: list[Segment] = []
        self.attributes = TraceAttributes(value_limit)
        self.span_links: list[SpanLinkRecord] = []
        self.timed_events: list[TimedEvent] = []
        self.start_time = time.time()
        self._touched_at: float | None = None
        self._duration_ms: float | None = None
        if parent is not None:
            parent.children.append(self)

    # ------------------------------------------------------------------
    # Attributes
    # ------------------------------------------------------------------

    def add_attribute(self, key: str, value: Any) -> None:
        self.attributes.add_attribute(Destination.SEGMENT, key, value)

    def add_span_attribute(self, key: str, value: Any) -> None:
        self.attributes.add_attribute(Destination.SPAN, key, value)

    def get_attributes(self) -> dict[str, Any]:
        return self.attributes.get(Destination.SEGMENT)

    def get_span_attributes(self) -> dict[str, Any]:
        return self.attributes.get(Destination.SPAN)

    def add_span_link(self, link: SpanLinkRecord) -> None:
        self.span_links.append(link)

    def add_timed_event(self, event: TimedEvent) -> None:
        self.timed_events.append(event)

    # ------------------------------------------------------------------
    # Timing
    # ------------------------------------------------------------------

    def touch(self) -> None:
        """Record that work on this segment has (so far) finished now."""
        self._touched_at = time.time()

    def overwrite_duration_ms(self, duration_ms: float) -> None:
        self._duration_ms = float(duration_ms)

    @property
    def duration_ms(self) -> float:
        if self._duration_ms is not None:
            return self._duration_ms
        end = self._touched_at if self._touched_at is not None else time.time()
        return max(0.0, (end - self.start_time) * 1000.0)

    @property
    def exclusive_duration_ms(self) -> float:
        children = sum(child.duration_ms for child in self.children)
        return max(0.0, self.duration_ms - children)

    # ------------------------------------------------------------------
    # Naming / traversal
    # ------------------------------------------------------------------

    def set_name_from_transaction(self, transaction: Transaction | None = None) -> None:
        """Rename this segment after its transaction's full name."""
        transaction = transaction or self.transaction
        if transaction is None:
            return
        name = transaction.get_full_name()
        if name:
            self.name = name
        self.partial_name = transaction.partial_name

    def walk(self) -> Iterator[Segment]:
        """Yield this segment and every descendant, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "duration_ms": self.duration_ms,
            "attributes": self.attributes.to_dict(),
            "span_links": [link.to_dict() for link in self.span_links],
            "timed_events": [event.to_dict() for event in self.timed_events],
            "children": [child.to_dict() for child in self.children],
        }

    def __repr__(self) -> str:
        return f"Segment(id={self.id!r}, name={self.name!r})"
