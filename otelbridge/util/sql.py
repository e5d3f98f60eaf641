"""Lightweight SQL statement classification.

Only the leading verb and its target table are extracted; the statement
is never fully parsed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger("otelbridge.synthesis")

_COMMENT = re.compile(r"/\*.*?\*/", re.S)

_OPERATIONS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("select", re.compile(r"^\s*?select\b.+?\bfrom[\s\[(]+([^\]\s,)(;]*)", re.I | re.S)),
    ("update", re.compile(r"^\s*?update\s+?([^\s,;]+)", re.I)),
    ("insert", re.compile(r"^\s*?insert(?:\s+ignore)?\s+into\s+([^\s(,;]+)", re.I)),
    ("delete", re.compile(r"^\s*?delete\s+?from\s+([^\s,(;]+)", re.I)),
)

_QUOTES = "`'\"[]"


@dataclass
class ParsedSql:
    """Classification result.

    Attributes:
        operation: ``select``, ``update``, ``insert``, ``delete`` or ``other``.
        collection: Target table, or ``None`` when it could not be found.
        database: Schema qualifier of the table, if any.
        query: The statement with block comments removed.
    """

    operation: str
    collection: str | None
    query: str
    database: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "collection": self.collection,
            "database": self.database,
            "query": self.query,
        }


def _split_collection(raw: str) -> tuple[str | None, str | None]:
    cleaned = "".join(ch for ch in raw if ch not in _QUOTES)
    if not cleaned:
        return None, None
    if "." in cleaned:
        database, collection = cleaned.split(".", 1)
        return database or None, collection or None
    return None, cleaned


def classify(statement: Any) -> ParsedSql:
    """Classify *statement*, a string or a ``{"sql"|"query": ...}`` mapping."""
    if isinstance(statement, dict):
        statement = statement.get("sql", statement.get("query"))
    if not isinstance(statement, str):
        logger.debug("Unable to classify non-string statement: %r", type(statement).__name__)
        return ParsedSql(operation="other", collection=None, query="")

    query = _COMMENT.sub("", statement).strip()
    for operation, pattern in _OPERATIONS:
        match = pattern.search(query)
        if match:
            database, collection = _split_collection(match.group(1))
            return ParsedSql(operation=operation, collection=collection, database=database, query=query)

    return ParsedSql(operation="other", collection=None, query=query)
