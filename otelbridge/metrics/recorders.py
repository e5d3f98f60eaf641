"""Timing recorders: turn finished segments into call-count/duration metrics.

Each recorder has the signature ``recorder(segment, scope, metrics)``.
*scope* is the owning transaction's full name; scoped metrics are only
written when it is known.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from otelbridge.constants import UNKNOWN

if TYPE_CHECKING:
    from otelbridge.trace.segment import Recorder, Segment
    from otelbridge.trace.transaction import Transaction


@dataclass
class MetricStats:
    call_count: int = 0
    total_ms: float = 0.0
    exclusive_ms: float = 0.0
    min_ms: float = 0.0
    max_ms: float = 0.0

    def record(self, duration_ms: float, exclusive_ms: float | None = None) -> None:
        if self.call_count == 0 or duration_ms < self.min_ms:
            self.min_ms = duration_ms
        if duration_ms > self.max_ms:
            self.max_ms = duration_ms
        self.call_count += 1
        self.total_ms += duration_ms
        self.exclusive_ms += duration_ms if exclusive_ms is None else exclusive_ms

    def to_dict(self) -> dict[str, Any]:
        return {
            "call_count": self.call_count,
            "total_ms": self.total_ms,
            "exclusive_ms": self.exclusive_ms,
            "min_ms": self.min_ms,
            "max_ms": self.max_ms,
        }


class MetricAggregator:
    """Per-transaction metric table."""

    def __init__(self) -> None:
        self.unscoped: dict[str, MetricStats] = {}
        self.scoped: dict[str, dict[str, MetricStats]] = {}

    def measure(
        self,
        name: str,
        scope: str | None,
        duration_ms: float,
        exclusive_ms: float | None = None,
    ) -> MetricStats:
        if scope:
            table = self.scoped.setdefault(scope, {})
        else:
            table = self.unscoped
        stats = table.setdefault(name, MetricStats())
        stats.record(duration_ms, exclusive_ms)
        return stats

    def get_metric(self, name: str, scope: str | None = None) -> MetricStats | None:
        if scope:
            return self.scoped.get(scope, {}).get(name)
        return self.unscoped.get(name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "unscoped": {k: v.to_dict() for k, v in self.unscoped.items()},
            "scoped": {
                scope: {k: v.to_dict() for k, v in table.items()}
                for scope, table in self.scoped.items()
            },
        }


def _suffix(segment: Segment) -> str:
    transaction = segment.transaction
    return "allWeb" if transaction is not None and transaction.is_web() else "allOther"


def _record_both(metrics: MetricAggregator, name: str, scope: str | None, segment: Segment) -> None:
    duration = segment.duration_ms
    exclusive = segment.exclusive_duration_ms
    if scope:
        metrics.measure(name, scope, duration, exclusive)
    metrics.measure(name, None, duration, exclusive)


# ------------------------------------------------------------------
# Recorders
# ------------------------------------------------------------------


def record_generic(segment: Segment, scope: str | None, metrics: MetricAggregator) -> None:
    """Scoped metric named after the segment."""
    duration = segment.duration_ms
    exclusive = segment.exclusive_duration_ms
    if scope:
        metrics.measure(segment.name, scope, duration, exclusive)
    else:
        metrics.measure(segment.name, None, duration, exclusive)


def record_message(segment: Segment, scope: str | None, metrics: MetricAggregator) -> None:
    """``MessageBroker/...`` metric for a producer segment."""
    _record_both(metrics, segment.name, scope, segment)


def external_recorder(host: str) -> Recorder:
    def record_external(segment: Segment, scope: str | None, metrics: MetricAggregator) -> None:
        duration = segment.duration_ms
        exclusive = segment.exclusive_duration_ms
        _record_both(metrics, segment.name, scope, segment)
        metrics.measure(f"External/{host or UNKNOWN}/all", None, duration, exclusive)
        metrics.measure("External/all", None, duration, exclusive)
        metrics.measure(f"External/{_suffix(segment)}", None, duration, exclusive)

    return record_external


def _datastore_rollups(
    metrics: MetricAggregator, system: str, segment: Segment, duration: float, exclusive: float
) -> None:
    suffix = _suffix(segment)
    metrics.measure("Datastore/all", None, duration, exclusive)
    metrics.measure(f"Datastore/{suffix}", None, duration, exclusive)
    metrics.measure(f"Datastore/{system}/all", None, duration, exclusive)
    metrics.measure(f"Datastore/{system}/{suffix}", None, duration, exclusive)


def datastore_operation_recorder(system: str) -> Recorder:
    """Recorder for datastore calls without a parsed statement."""
    system = system or UNKNOWN

    def record_operation(segment: Segment, scope: str | None, metrics: MetricAggregator) -> None:
        duration = segment.duration_ms
        exclusive = segment.exclusive_duration_ms
        _record_both(metrics, segment.name, scope, segment)
        _datastore_rollups(metrics, system, segment, duration, exclusive)

    return record_operation


@dataclass
class ParsedStatement:
    """A classified datastore statement bound to its system."""

    system: str
    operation: str
    collection: str | None = None
    raw: str = ""

    @property
    def operation_metric(self) -> str:
        return f"Datastore/operation/{self.system}/{self.operation}"

    @property
    def statement_metric(self) -> str | None:
        if not self.collection:
            return None
        return f"Datastore/statement/{self.system}/{self.collection}/{self.operation}"

    def record_metrics(self, segment: Segment, scope: str | None, metrics: MetricAggregator) -> None:
        duration = segment.duration_ms
        exclusive = segment.exclusive_duration_ms
        statement = self.statement_metric
        if statement:
            if scope:
                metrics.measure(statement, scope, duration, exclusive)
            metrics.measure(statement, None, duration, exclusive)
            metrics.measure(self.operation_metric, None, duration, exclusive)
        else:
            if scope:
                metrics.measure(self.operation_metric, scope, duration, exclusive)
            metrics.measure(self.operation_metric, None, duration, exclusive)
        _datastore_rollups(metrics, self.system, segment, duration, exclusive)


def datastore_query_recorder(parsed: ParsedStatement) -> Recorder:
    return parsed.record_metrics


def record_transaction(transaction: Transaction) -> None:
    """Transaction-level rollups, recorded once the name is final."""
    metrics = transaction.metrics
    name = transaction.name
    duration = transaction.duration_ms
    if transaction.is_web():
        metrics.measure("HttpDispatcher", None, duration)
        metrics.measure("WebTransaction", None, duration)
        metrics.measure("WebTransactionTotalTime", None, duration)
        if name:
            metrics.measure(name, None, duration)
            partial = name.split("/", 1)[1] if "/" in name else name
            metrics.measure(f"WebTransactionTotalTime/{partial}", None, duration)
    else:
        metrics.measure("OtherTransaction/all", None, duration)
        if transaction.type.value == "message":
            metrics.measure("OtherTransaction/Message/all", None, duration)
        if name:
            metrics.measure(name, None, duration)
            metrics.measure(f"OtherTransactionTotalTime/{name.split('/', 1)[1]}", None, duration)
