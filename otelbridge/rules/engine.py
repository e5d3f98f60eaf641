"""Rule loading and span-to-rule matching.

Rules are bucketed by span kind into a primary and a fallback list when
the engine is built. :meth:`RulesEngine.test` tries the primary rules for
the span's kind in declaration order, then the fallback rules, and
returns the first rule that matches.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from otelbridge.core.schemas import validate_file
from otelbridge.rules.spec import SPAN_KINDS, Rule, RuleLoadError
from otelbridge.trace.span import kind_name, span_attributes

logger = logging.getLogger("otelbridge.rules")

#: Rule table shipped with the package.
DEFAULT_RULES_PATH = Path(__file__).resolve().parent / "transformation_rules.json"


@dataclass
class RuleBucket:
    primary: list[Rule] = field(default_factory=list)
    fallback: list[Rule] = field(default_factory=list)


def load_rule_dicts(path: str | Path | None = None) -> list[dict[str, Any]]:
    """Read and schema-check a rule table without building rules."""
    path = Path(path) if path is not None else DEFAULT_RULES_PATH
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise RuleLoadError(f"Cannot read rule table {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise RuleLoadError(f"Invalid JSON in rule table {path}: {exc}") from exc
    errors = validate_file("rules", data)
    if errors:
        raise RuleLoadError(f"Rule table {path} is invalid:\n  " + "\n  ".join(errors[:5]))
    return data


def parse_rules(records: Iterable[dict[str, Any]]) -> list[Rule]:
    """Build :class:`Rule` objects, rejecting duplicate names."""
    rules: list[Rule] = []
    seen: set[str] = set()
    for record in records:
        try:
            rule = Rule.from_dict(record)
        except RuleLoadError:
            raise
        except (KeyError, TypeError, ValueError) as exc:
            raise RuleLoadError(f"Rule {record.get('name')!r}: {exc}") from exc
        if rule.name in seen:
            raise RuleLoadError(f"Duplicate rule name {rule.name!r}")
        seen.add(rule.name)
        rules.append(rule)
    return rules


def load_rules(path: str | Path | None = None) -> list[Rule]:
    """Load, validate and parse a rule table (the bundled one by default).

    Raises:
        RuleLoadError: If the file cannot be read or any rule is malformed.
    """
    return parse_rules(load_rule_dicts(path))


class RulesEngine:
    """First-match rule lookup per span kind."""

    def __init__(self, rules: Iterable[Rule]) -> None:
        self.rules: list[Rule] = list(rules)
        self._buckets: dict[str, RuleBucket] = {kind: RuleBucket() for kind in SPAN_KINDS}
        for rule in self.rules:
            for kind in sorted(rule.span_kinds):
                bucket = self._buckets[kind]
                (bucket.fallback if rule.is_fallback else bucket.primary).append(rule)
        logger.debug("Loaded %d rules", len(self.rules))

    @classmethod
    def from_file(cls, path: str | Path | None = None) -> RulesEngine:
        return cls(load_rules(path))

    def bucket(self, kind: str) -> RuleBucket:
        return self._buckets.get(kind.lower(), RuleBucket())

    def test(self, span: Any) -> Rule | None:
        """Return the first rule matching *span*, or ``None``."""
        bucket = self._buckets.get(kind_name(span))
        if bucket is None:
            return None
        attributes = span_attributes(span)
        for rule in bucket.primary:
            if rule.matches(attributes):
                return rule
        for rule in bucket.fallback:
            if rule.matches(attributes):
                return rule
        return None

    def get(self, name: str) -> Rule | None:
        for rule in self.rules:
            if rule.name == name:
                return rule
        return None

    def __len__(self) -> int:
        return len(self.rules)
