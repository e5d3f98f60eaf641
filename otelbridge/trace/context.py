"""Ambient segment/transaction context.

Each thread and each asyncio task sees its own active segment through a
:class:`contextvars.ContextVar`, so interleaved transactions never see
each other's state. The bridge only reads this context; host
instrumentation writes it with :meth:`TraceContext.bind`.

Usage::

    ctx = TraceContext()
    with ctx.bind(segment):
        ...  # spans started here attach to ``segment``
"""

from __future__ import annotations

import contextvars
import itertools
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Generator

from otelbridge.trace.segment import Recorder, Segment

if TYPE_CHECKING:
    from otelbridge.trace.transaction import Transaction

logger = logging.getLogger("otelbridge.trace")

_ids = itertools.count()


class TraceContext:
    """Context-local pointer to the active segment."""

    def __init__(self) -> None:
        self._active: contextvars.ContextVar[Segment | None] = contextvars.ContextVar(
            f"otelbridge_active_segment_{next(_ids)}", default=None
        )

    def get_active_segment(self) -> Segment | None:
        segment = self._active.get()
        if segment is None or segment.transaction is None or not segment.transaction.is_active():
            return None
        return segment

    def get_active_transaction(self) -> Transaction | None:
        segment = self.get_active_segment()
        return segment.transaction if segment is not None else None

    def create_segment(
        self,
        *,
        name: str,
        parent: Segment,
        id: str | None = None,
        recorder: Recorder | None = None,
        transaction: Transaction | None = None,
    ) -> Segment:
        """Create a child of *parent* without changing the active segment."""
        transaction = transaction or parent.transaction
        value_limit = parent.attributes.value_limit
        segment = Segment(
            name,
            id=id,
            parent=parent,
            transaction=transaction,
            recorder=recorder,
            value_limit=value_limit,
        )
        logger.debug("segment.create name=%s id=%s parent=%s", name, segment.id, parent.id)
        return segment

    @contextmanager
    def bind(self, segment: Segment | None) -> Generator[Segment | None, None, None]:
        """Make *segment* the active segment for the enclosed block."""
        token = self._active.set(segment)
        try:
            yield segment
        finally:
            self._active.reset(token)
