"""Transactions: the named, timed root of one unit of work."""

from __future__ import annotations

import logging
import re
import time
import uuid
from enum import Enum
from typing import TYPE_CHECKING, Any

from otelbridge.metrics.recorders import MetricAggregator, record_transaction
from otelbridge.trace.attributes import DEFAULT_VALUE_LIMIT, Destination, TraceAttributes
from otelbridge.trace.name_state import STATUS_CODE_NAMES, NameState
from otelbridge.trace.segment import Segment

if TYPE_CHECKING:
    from otelbridge.trace.errors import TracedError

logger = logging.getLogger("otelbridge.trace")


class TransactionType(str, Enum):
    WEB = "web"
    BG = "bg"
    MESSAGE = "message"


TYPE_PREFIXES: dict[TransactionType, str] = {
    TransactionType.WEB: "WebTransaction",
    TransactionType.BG: "OtherTransaction",
    TransactionType.MESSAGE: "OtherTransaction/Message",
}

#: Partial name used for web transactions nothing else could name.
NORMALIZED_FALLBACK = "NormalizedUri/*"
NORMALIZED_PREFIX = "NormalizedUri"

#: Fields rule directives may assign directly on a transaction.
ASSIGNABLE_FIELDS = frozenset({"status_code", "url", "verb"})

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")


class TransactionStateError(RuntimeError):
    """Raised when a transaction is ended twice."""


class _State(str, Enum):
    ACTIVE = "active"
    ENDED = "ended"


class Trace:
    """Root segment plus the transaction-wide attribute store."""

    def __init__(self, transaction: Transaction, value_limit: int = DEFAULT_VALUE_LIMIT) -> None:
        self.transaction = transaction
        self.attributes = TraceAttributes(value_limit)
        self.root = Segment("ROOT", transaction=transaction, value_limit=value_limit)

    def add_attribute(self, destination: Destination | str, key: str, value: Any) -> None:
        self.attributes.add_attribute(destination, key, value)

    def segments(self) -> list[Segment]:
        return list(self.root.walk())


class Transaction:
    """A transaction created for a root server/consumer span.

    Attributes:
        id: Transaction id.
        trace_id: Hex trace id of the span that started it.
        type: :class:`TransactionType`.
        name_state: Shared :class:`NameState`; frozen by :meth:`end`.
        trace: Root segment and common attributes.
        base_segment: Segment of the span that started the transaction.
        name: Full name, set by :meth:`end` (or earlier by web finalization).
        named_from_path: ``True`` when the name state only holds the raw
            request path because no route was asserted.
    """

    def __init__(
        self,
        agent: Any = None,
        *,
        trace_id: str | None = None,
        type: TransactionType | str = TransactionType.WEB,
    ) -> None:
        self.agent = agent
        value_limit = getattr(getattr(agent, "config", None), "attribute_value_limit", DEFAULT_VALUE_LIMIT)
        self.id = uuid.uuid4().hex[:16]
        self.trace_id = trace_id or uuid.uuid4().hex
        self.type = TransactionType(type)
        self.name_state = NameState()
        self.trace = Trace(self, value_limit)
        self.base_segment: Segment | None = None
        self.status_code: int | None = None
        self.url: str | None = None
        self.verb: str | None = None
        self.name: str | None = None
        self.named_from_path = False
        self.parent_span_id: str | None = None
        self.parent_transport_type: str | None = None
        self.exceptions: list[TracedError] = []
        self.metrics = MetricAggregator()
        self.ignore = False
        self.start_time = time.time()
        self.end_time: float | None = None
        self._partial_name: str | None = None
        self._user_partial_name: str | None = None
        self._state = _State.ACTIVE

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def is_active(self) -> bool:
        return self._state is _State.ACTIVE

    def is_web(self) -> bool:
        return self.type is TransactionType.WEB

    def set_type(self, value: TransactionType | str | None) -> None:
        if not value:
            return
        try:
            self.type = TransactionType(value)
        except ValueError:
            logger.debug("Ignoring unknown transaction type %r for %s", value, self.id)

    @property
    def duration_ms(self) -> float:
        if self.base_segment is not None:
            return self.base_segment.duration_ms
        end = self.end_time if self.end_time is not None else time.time()
        return max(0.0, (end - self.start_time) * 1000.0)

    def accept_trace_context(self, parent_span_id: str | None, transport: str | None) -> None:
        """Record the upstream caller of this transaction."""
        self.parent_span_id = parent_span_id
        self.parent_transport_type = transport or "Unknown"

    def set_field(self, name: str, value: Any) -> bool:
        """Assign a whitelisted field. Returns ``False`` if *name* is not assignable."""
        attr = _CAMEL.sub("_", name).lower()
        if attr not in ASSIGNABLE_FIELDS:
            logger.debug("Refusing to set transaction field %s on %s", name, self.id)
            return False
        if attr == "status_code" and value is not None:
            try:
                value = int(value)
            except (TypeError, ValueError):
                logger.debug("Non-numeric status code %r on %s", value, self.id)
                return False
        setattr(self, attr, value)
        return True

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    @property
    def partial_name(self) -> str | None:
        return self._partial_name

    def set_partial_name(self, name: str | None) -> None:
        """Everything after the ``WebTransaction/`` style type prefix."""
        self._partial_name = name

    def apply_user_naming_rules(self, path: str) -> None:
        rules = getattr(self.agent, "naming_rules", None)
        if not rules:
            return
        result = rules.normalize(path)
        if result.ignore:
            self.ignore = True
        if result.matched and not result.ignore:
            self._user_partial_name = f"{NORMALIZED_PREFIX}{'' if result.value.startswith('/') else '/'}{result.value}"

    def finalize_name_from_web(self, status_code: int | None) -> None:
        """Fold *status_code* into the name of a web transaction."""
        if status_code is not None:
            self.set_field("status_code", status_code)
        self.name = self._compute_full_name()

    def get_name(self) -> str | None:
        """Current partial name."""
        if self.is_web():
            return self._web_partial_name()
        if self._partial_name:
            return self._partial_name
        return self.name_state.get_name()

    def get_full_name(self) -> str | None:
        if self.name:
            return self.name
        return self._compute_full_name()

    def _compute_full_name(self) -> str | None:
        partial = self.get_name()
        if not partial:
            return None
        return f"{TYPE_PREFIXES[self.type]}/{partial}"

    def _web_partial_name(self) -> str:
        partial = self._partial_name
        if not self.name_state.is_empty():
            partial = self.name_state.get_full_name()
            if self.named_from_path:
                partial = self.name_state.get_status_name(self.status_code) or partial
        if self._user_partial_name:
            partial = self._user_partial_name
        if not partial:
            if self.status_code in STATUS_CODE_NAMES:
                partial = self.name_state.get_status_name(self.status_code)
            else:
                partial = NORMALIZED_FALLBACK
        return partial

    # ------------------------------------------------------------------
    # End of life
    # ------------------------------------------------------------------

    def end(self) -> Transaction:
        """Freeze naming, record metrics and hand the transaction to the agent.

        Raises:
            TransactionStateError: If the transaction already ended.
        """
        if self._state is _State.ENDED:
            raise TransactionStateError(f"Transaction {self.id} already ended")
        self._state = _State.ENDED
        self.end_time = time.time()

        self.name_state.freeze()
        self.name = self._compute_full_name()
        if not self.name:
            logger.debug("No name for transaction %s", self.id)

        if self.base_segment is not None:
            self.base_segment.touch()
            self.base_segment.set_name_from_transaction(self)
        self.trace.root.touch()

        if not self.ignore:
            for segment in self.trace.root.walk():
                if segment.recorder is not None:
                    segment.recorder(segment, self.name, self.metrics)
            record_transaction(self)

        for error in self.exceptions:
            error.transaction_name = self.name

        logger.debug("transaction.end id=%s name=%s ignore=%s", self.id, self.name, self.ignore)
        if self.agent is not None:
            self.agent.transaction_finished(self)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "trace_id": self.trace_id,
            "type": self.type.value,
            "name": self.get_full_name(),
            "status_code": self.status_code,
            "url": self.url,
            "verb": self.verb,
            "parent_span_id": self.parent_span_id,
            "parent_transport_type": self.parent_transport_type,
            "ignore": self.ignore,
            "attributes": self.trace.attributes.to_dict(),
            "errors": [e.to_dict() for e in self.exceptions],
            "trace": self.trace.root.to_dict(),
        }

    def __repr__(self) -> str:
        return f"Transaction(id={self.id!r}, name={self.get_full_name()!r}, active={self.is_active()})"
