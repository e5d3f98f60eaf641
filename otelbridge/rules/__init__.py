"""Rule tables: loading, matching and the template/extraction language."""

from __future__ import annotations

__all__ = [
    "AttributeMapping",
    "ExpressionError",
    "Rule",
    "RuleLoadError",
    "RuleType",
    "RulesEngine",
    "Target",
    "load_rules",
]

from otelbridge.rules.engine import RulesEngine, load_rules
from otelbridge.rules.expressions import ExpressionError
from otelbridge.rules.spec import AttributeMapping, Rule, RuleLoadError, RuleType, Target
