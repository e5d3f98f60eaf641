"""URL helpers: parsing, scrubbing, path obfuscation and user naming rules."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import SplitResult, parse_qsl, urlsplit

logger = logging.getLogger("otelbridge.synthesis")

_JS_BACKREF = re.compile(r"\$(\d+)")


def parse_url(url: Any) -> SplitResult:
    """Parse an absolute URL.

    Raises:
        ValueError: If *url* is not a string with both a scheme and a host.
    """
    if not isinstance(url, str):
        raise ValueError(f"expected a URL string, got {type(url).__name__}")
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"Invalid URL: {url}")
    # Accessing .port validates it.
    parts.port
    return parts


def scrub(url: str | SplitResult) -> str:
    """Path of *url* without query string, fragment or ``;`` parameters."""
    parts = parse_url(url) if isinstance(url, str) else url
    path = parts.path.split(";", 1)[0]
    return path or "/"


def parse_parameters(url: str | SplitResult) -> dict[str, Any]:
    """Query parameters; bare flags (``?v``) map to ``True``."""
    parts = parse_url(url) if isinstance(url, str) else url
    params: dict[str, Any] = {}
    for chunk in parts.query.split("&"):
        if not chunk:
            continue
        if "=" not in chunk:
            params[chunk] = True
            continue
        for key, value in parse_qsl(chunk, keep_blank_values=True):
            params[key] = value
    return params


def _regex_flags(flags: str) -> int:
    out = 0
    if "i" in flags:
        out |= re.I
    if "m" in flags:
        out |= re.M
    if "s" in flags:
        out |= re.S
    return out


class PathObfuscator:
    """Configured ``{regex, flags, replacement}`` rule for URL paths, compiled once.

    Replacements may use ``$1`` style back-references. Without the ``g``
    flag only the first match is replaced. An invalid pattern is logged
    and leaves paths untouched.
    """

    def __init__(self, obfuscation: dict[str, Any] | None = None) -> None:
        self.regex: re.Pattern[str] | None = None
        self.replacement = ""
        self.count = 1
        if not obfuscation or not obfuscation.get("enabled", True):
            return
        pattern = obfuscation.get("regex")
        if not pattern:
            return
        flags = obfuscation.get("flags") or ""
        try:
            self.regex = re.compile(pattern, _regex_flags(flags))
        except re.error as exc:
            logger.warning("Invalid url_obfuscation regex %r: %s", pattern, exc)
            return
        self.replacement = _JS_BACKREF.sub(r"\\g<\1>", obfuscation.get("replacement") or "")
        self.count = 0 if "g" in flags else 1

    def __call__(self, path: str) -> str:
        if self.regex is None or not isinstance(path, str):
            return path
        return self.regex.sub(self.replacement, path, count=self.count)


# ------------------------------------------------------------------
# User naming rules
# ------------------------------------------------------------------


@dataclass
class NamingResult:
    matched: bool
    value: str
    ignore: bool = False


@dataclass
class NamingRule:
    """Paths matching ``pattern`` are named ``name`` (or ignored)."""

    pattern: re.Pattern[str]
    name: str | None = None
    ignore: bool = False

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> NamingRule:
        return cls(
            pattern=re.compile(d["pattern"]),
            name=d.get("name"),
            ignore=bool(d.get("ignore", False)),
        )


class UserNamingRules:
    """Ordered user naming rules; the first matching rule wins."""

    def __init__(self, rules: list[dict[str, Any]] | None = None) -> None:
        self.rules = [NamingRule.from_dict(r) for r in rules or []]

    def normalize(self, path: str) -> NamingResult:
        for rule in self.rules:
            if not rule.pattern.search(path):
                continue
            if rule.ignore:
                return NamingResult(matched=True, value=path, ignore=True)
            return NamingResult(matched=True, value=rule.name or path)
        return NamingResult(matched=False, value=path)

    def __len__(self) -> int:
        return len(self.rules)
