"""Trace model: transactions, segments, naming state and ambient context."""

from __future__ import annotations

__all__ = [
    "Destination",
    "ErrorCollector",
    "NameState",
    "Segment",
    "TraceAttributes",
    "TraceContext",
    "TracedError",
    "Transaction",
    "TransactionStateError",
    "TransactionType",
    "span_from_dict",
]

from otelbridge.trace.attributes import Destination, TraceAttributes
from otelbridge.trace.context import TraceContext
from otelbridge.trace.errors import ErrorCollector, TracedError
from otelbridge.trace.name_state import NameState
from otelbridge.trace.segment import Segment
from otelbridge.trace.span import span_from_dict
from otelbridge.trace.transaction import Transaction, TransactionStateError, TransactionType
