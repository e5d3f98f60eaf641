"""Transaction naming state machine.

A :class:`NameState` is shared between the synthesized transaction and any
framework instrumentation that wants a say in the final transaction name.
Instrumentation pushes route fragments onto a path stack while a request is
in flight; the owning transaction freezes the state when it ends, after which
every mutator is a no-op.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, TypeVar

#: Transaction names used for well-known HTTP status codes.
STATUS_CODE_NAMES: dict[int, str] = {
    404: "(not found)",
    405: "(method not allowed)",
    501: "(not implemented)",
}

#: Namespace for web names built from the name state.
FRAMEWORK_PREFIX = "WebFrameworkUri"

_F = TypeVar("_F", bound=Callable[..., Any])


class NameStateStatus(str, Enum):
    """Lifecycle of a :class:`NameState`. ``FROZEN`` is terminal."""

    OPEN = "open"
    FROZEN = "frozen"


def _while_open(method: _F) -> _F:
    """Turn *method* into a no-op once the state has been frozen."""

    @functools.wraps(method)
    def wrapper(self: NameState, *args: Any, **kwargs: Any) -> Any:
        if self.status is NameStateStatus.FROZEN:
            return None
        return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


@dataclass
class PathFrame:
    """One entry of the path stack."""

    path: str
    params: dict[str, Any] | None = None


class NameState:
    """Stack-based builder for a transaction's display name.

    Attributes:
        prefix: Framework prefix (e.g. ``"Expressjs"``), trailing slash removed.
        verb: Upper-cased request verb.
        delimiter: Text inserted between the verb and the path.
        path_stack: Live route fragments.
        marked_path: Snapshot taken by :meth:`mark_path`.
        status: ``OPEN`` until :meth:`freeze` is called.
    """

    def __init__(
        self,
        prefix: str | None = None,
        verb: str | None = None,
        delimiter: str | None = None,
        path: str | None = None,
    ) -> None:
        self.status = NameStateStatus.OPEN
        self.prefix: str | None = None
        self.verb: str | None = None
        self.delimiter: str | None = None
        self.path_stack: list[PathFrame] = []
        self.marked_path: list[PathFrame] = []
        self.set_name(prefix, verb, delimiter, path)

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    @_while_open
    def set_name(
        self,
        prefix: str | None,
        verb: str | None,
        delimiter: str | None,
        path: str | None,
    ) -> None:
        """Reset every component of the name."""
        self.set_prefix(prefix)
        self.set_verb(verb)
        self.delimiter = delimiter
        self.path_stack = [PathFrame(path=path)] if path else []
        self.marked_path = []

    @_while_open
    def set_prefix(self, prefix: str | None) -> None:
        if prefix is None:
            self.prefix = None
            return
        prefix = str(prefix)
        self.prefix = prefix[:-1] if prefix.endswith("/") else prefix

    @_while_open
    def set_verb(self, verb: str | None) -> None:
        self.verb = str(verb).upper() if verb else None

    @_while_open
    def set_delimiter(self, delimiter: str | None) -> None:
        self.delimiter = delimiter

    @_while_open
    def append_path(self, path: str | re.Pattern[str] | None, params: dict[str, Any] | None = None) -> None:
        """Push a route fragment. Compiled patterns are stored by their source text."""
        if path is None:
            return
        text = path.pattern if isinstance(path, re.Pattern) else str(path)
        self.path_stack.append(PathFrame(path=text, params=params or None))

    @_while_open
    def append_path_if_empty(
        self, path: str | re.Pattern[str] | None, params: dict[str, Any] | None = None
    ) -> None:
        if self.is_empty():
            self.append_path(path or "/", params)

    @_while_open
    def pop_path(self, path: str | None = None) -> None:
        """Pop one frame, or everything back to and including the last *path* frame."""
        if not self.path_stack:
            return
        if path is None:
            self.path_stack.pop()
            return
        for idx in range(len(self.path_stack) - 1, -1, -1):
            if self.path_stack[idx].path == path:
                del self.path_stack[idx:]
                return

    @_while_open
    def mark_path(self) -> None:
        """Snapshot the live stack so it survives later pops."""
        self.marked_path = list(self.path_stack)

    def freeze(self) -> None:
        self.status = NameStateStatus.FROZEN

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def is_frozen(self) -> bool:
        return self.status is NameStateStatus.FROZEN

    def is_empty(self) -> bool:
        return not self.path_stack and not self.marked_path

    def get_path(self) -> str | None:
        """Join the active frames into one ``/``-delimited path.

        The live stack wins over the marked snapshot. Returns ``None`` when
        nothing was ever recorded.
        """
        frames = self.path_stack or self.marked_path
        if not frames:
            return None

        path = "/"
        for frame in frames:
            part = frame.path
            if not part or part == "/":
                continue
            if not part.startswith("/") and not path.endswith("/"):
                path += "/"
            elif part.startswith("/") and path.endswith("/"):
                part = part[1:]
            path += part
        return path

    def get_name(self) -> str | None:
        path = self.get_path()
        if path is None:
            return None
        return self._compose(path)

    def get_full_name(self) -> str | None:
        """:meth:`get_name` under the ``WebFrameworkUri`` namespace."""
        name = self.get_name()
        if name is None:
            return None
        return self._with_framework_prefix(name)

    def get_status_name(self, status_code: int | None) -> str | None:
        """Name for a status code listed in :data:`STATUS_CODE_NAMES`, else ``None``."""
        if status_code is None:
            return None
        try:
            label = STATUS_CODE_NAMES.get(int(status_code))
        except (TypeError, ValueError):
            return None
        if label is None:
            return None
        return self._with_framework_prefix(self._compose(label))

    def for_each_params(self, fn: Callable[[dict[str, Any]], None]) -> None:
        for frame in self.path_stack or self.marked_path:
            if frame.params:
                fn(frame.params)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _compose(self, path: str) -> str:
        verb = f"/{self.verb}" if self.verb else ""
        return f"{self.prefix or ''}{verb}{self.delimiter or ''}{path}"

    @staticmethod
    def _with_framework_prefix(name: str) -> str:
        return f"{FRAMEWORK_PREFIX}/{name}"

    def __repr__(self) -> str:
        return (
            f"NameState(prefix={self.prefix!r}, verb={self.verb!r}, "
            f"path={self.get_path()!r}, status={self.status.value})"
        )
