"""Errors reported by spans and attached to transactions."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from otelbridge.trace.segment import Segment
    from otelbridge.trace.transaction import Transaction

logger = logging.getLogger("otelbridge.trace")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class TracedError:
    """An error captured from a span's ``exception`` event."""

    message: str
    type: str | None = None
    stack: str | None = None
    transaction_name: str | None = None
    segment_id: str | None = None
    timestamp: str = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "type": self.type,
            "stack": self.stack,
            "transaction_name": self.transaction_name,
            "segment_id": self.segment_id,
            "timestamp": self.timestamp,
        }


class ErrorCollector:
    """Collects :class:`TracedError` records across transactions (thread-safe)."""

    def __init__(self, max_errors: int = 100) -> None:
        self.max_errors = max_errors
        self._errors: list[TracedError] = []
        self._lock = threading.Lock()

    def add(
        self,
        transaction: Transaction | None,
        error: TracedError,
        segment: Segment | None = None,
    ) -> TracedError:
        if segment is not None:
            error.segment_id = segment.id
        if transaction is not None:
            error.transaction_name = transaction.get_full_name()
            transaction.exceptions.append(error)
        with self._lock:
            if len(self._errors) < self.max_errors:
                self._errors.append(error)
            else:
                logger.debug("Error collector full, dropping error: %s", error.message)
        return error

    def errors(self) -> list[TracedError]:
        with self._lock:
            return list(self._errors)

    def clear(self) -> None:
        with self._lock:
            self._errors.clear()
