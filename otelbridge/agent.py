"""Runtime container shared by the processor, transactions and tooling."""

from __future__ import annotations

import logging
import re
import threading
from collections import deque
from typing import TYPE_CHECKING, Callable

from otelbridge.config import BridgeConfig, ConfigError
from otelbridge.rules.engine import RulesEngine
from otelbridge.trace.context import TraceContext
from otelbridge.trace.errors import ErrorCollector
from otelbridge.util.urls import PathObfuscator, UserNamingRules

if TYPE_CHECKING:
    from otelbridge.trace.transaction import Transaction

logger = logging.getLogger("otelbridge.trace")

TransactionCallback = Callable[["Transaction"], None]


class Agent:
    """Configuration, rule table, ambient context and finished transactions.

    Finished transactions land in :attr:`finished_transactions`, a buffer
    bounded by ``config.max_finished_transactions``, and are passed to every
    callback in :attr:`on_transaction_finished`.
    """

    def __init__(self, config: BridgeConfig | None = None, rules_engine: RulesEngine | None = None) -> None:
        self.config = config or BridgeConfig()
        self.rules_engine = rules_engine or RulesEngine.from_file(self.config.rules_path)
        self.trace_context = TraceContext()
        self.errors = ErrorCollector()
        self.url_obfuscator = PathObfuscator(self.config.url_obfuscation)
        try:
            self.naming_rules = UserNamingRules(self.config.naming_rules)
        except re.error as exc:
            raise ConfigError(f"Invalid naming rule pattern: {exc}") from exc
        self.finished_transactions: deque[Transaction] = deque(maxlen=self.config.max_finished_transactions)
        self.on_transaction_finished: list[TransactionCallback] = []
        self._lock = threading.Lock()

    def transaction_finished(self, transaction: Transaction) -> None:
        with self._lock:
            self.finished_transactions.append(transaction)
            callbacks = list(self.on_transaction_finished)
        for callback in callbacks:
            try:
                callback(transaction)
            except Exception:
                logger.warning("Transaction callback %r failed", callback, exc_info=True)

    def drain(self) -> list[Transaction]:
        """Remove and return the buffered finished transactions."""
        with self._lock:
            out = list(self.finished_transactions)
            self.finished_transactions.clear()
        return out
