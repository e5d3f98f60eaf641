"""Destination-scoped attribute store."""

from __future__ import annotations

from enum import Enum
from typing import Any

#: Default maximum length of a string attribute value.
DEFAULT_VALUE_LIMIT = 255


class Destination(str, Enum):
    """Where an attribute ends up once a trace is reported."""

    COMMON = "common"
    SEGMENT = "segment"
    SPAN = "span"


class TraceAttributes:
    """Attributes grouped by :class:`Destination`.

    String values longer than *value_limit* are truncated on write.
    ``None`` values are ignored.
    """

    def __init__(self, value_limit: int = DEFAULT_VALUE_LIMIT) -> None:
        self.value_limit = value_limit
        self._store: dict[Destination, dict[str, Any]] = {d: {} for d in Destination}

    def add_attribute(self, destination: Destination | str, key: str, value: Any) -> None:
        if value is None:
            return
        dest = Destination(destination)
        if isinstance(value, str) and self.value_limit and len(value) > self.value_limit:
            value = value[: self.value_limit]
        self._store[dest][key] = value

    def get(self, destination: Destination | str) -> dict[str, Any]:
        """Return a copy of the attributes for *destination*."""
        return dict(self._store[Destination(destination)])

    def has(self, destination: Destination | str, key: str) -> bool:
        return key in self._store[Destination(destination)]

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {d.value: dict(v) for d, v in self._store.items() if v}
