"""Template and extraction helpers used by rule directives.

Templates use ``${attribute.key}`` placeholders::

    >>> transform_template("External/${server.address}", {"server.address": "example.com"})
    'External/example.com'
    >>> transform_template("prefix-${missing}", {})
    'prefix-unknown'
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping

from otelbridge.rules.expressions import CompiledExpression, compile_expression
from otelbridge.trace.attributes import Destination

if TYPE_CHECKING:
    from otelbridge.rules.spec import AttributeMapping, RegexSpec
    from otelbridge.trace.segment import Segment
    from otelbridge.trace.transaction import Transaction

logger = logging.getLogger("otelbridge.rules")

PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")

#: Substituted for placeholders without a usable value.
UNKNOWN_VALUE = "unknown"


def transform_template(
    template: str,
    data: Mapping[str, Any],
    rules: Mapping[str, Callable[..., Any]] | None = None,
) -> str:
    """Replace every ``${key}`` in *template* with ``data[key]``.

    An absent key renders as ``"unknown"``. A present but falsy value also
    renders as ``"unknown"`` unless *rules* has a function for the key; a
    registered function's result is used as-is for any present value.
    """
    rules = rules or {}

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in data:
            return UNKNOWN_VALUE
        value = data[key]
        fn = rules.get(key)
        if fn is not None:
            result = fn(value)
            return "" if result is None else str(result)
        if not value:
            return UNKNOWN_VALUE
        return str(value)

    return PLACEHOLDER.sub(_replace, template)


def build_rule_mappings(mappings: Iterable[Mapping[str, Any]] | None) -> dict[str, CompiledExpression]:
    """Compile ``[{key, arguments, body}, ...]`` into ``{key: callable}``.

    Raises:
        ExpressionError: If any body is invalid.
        KeyError: If an entry lacks ``key`` or ``body``.
    """
    return {
        entry["key"]: compile_expression(entry["body"], entry.get("arguments"), key=entry["key"])
        for entry in mappings or []
    }


def extract_attribute_value(
    attribute: AttributeMapping,
    attributes: Mapping[str, Any],
    exclude_attributes: set[str],
) -> Any:
    """Resolve a directive's value from span *attributes*.

    Priority is ``key`` > ``value`` > ``template``. A consumed source key
    (or, for literals, the target name) is added to *exclude_attributes*
    so it is not copied again. Templates consume nothing.
    """
    if attribute.key is not None:
        if attribute.key not in attributes:
            return None
        exclude_attributes.add(attribute.key)
        value = attributes[attribute.key]
        fn = attribute.mappings.get(attribute.key)
        return fn(value) if fn is not None else value

    if attribute.value is not None:
        if attribute.name:
            exclude_attributes.add(attribute.name)
        return attribute.value

    if attribute.template is not None:
        return transform_template(attribute.template, attributes, attribute.mappings)

    return None


def assign_to_target(
    *,
    target: Any,
    name: str,
    value: Any,
    segment: Segment | None,
    transaction: Transaction | None,
) -> bool:
    """Write *value* to a segment, the transaction or the trace.

    Returns ``False`` when nothing was written.
    """
    dest = getattr(target, "value", target)
    if dest == "segment":
        if segment is None:
            return False
        segment.add_attribute(name, value)
        return True
    if transaction is None:
        logger.debug("No transaction to receive %s=%r", name, value)
        return False
    if dest == "transaction":
        return transaction.set_field(name, value)
    if dest == "trace":
        transaction.trace.add_attribute(Destination.COMMON, name, value)
        return True
    logger.debug("Unknown attribute target %r for %s", target, name)
    return False


def process_regex(
    regex: RegexSpec,
    value: Any,
    *,
    target: Any,
    segment: Segment | None,
    transaction: Transaction | None,
) -> int:
    """Apply *regex* to *value* and assign what it captures.

    With the ``g`` flag every match is processed, otherwise only the first.
    For each match, a ``name``/``value`` group pair assigns
    ``prefix + match[name] -> match[value]``; each declared group either
    recurses into its nested regex or assigns ``prefix + group -> match[group]``.
    Returns the number of assignments made.
    """
    if value is None:
        return 0
    text = value if isinstance(value, str) else str(value)
    dest = regex.target or target

    if regex.is_global:
        matches: Iterable[re.Match[str]] = regex.pattern.finditer(text)
    else:
        first = regex.pattern.search(text)
        matches = [first] if first else []

    count = 0
    for match in matches:
        if regex.name and regex.value:
            key = match.group(regex.name)
            if key:
                count += assign_to_target(
                    target=dest,
                    name=f"{regex.prefix}{key}",
                    value=match.group(regex.value),
                    segment=segment,
                    transaction=transaction,
                )
        for group in regex.groups:
            captured = match.group(group.group)
            if captured is None:
                continue
            if group.regex is not None:
                count += process_regex(group.regex, captured, target=dest, segment=segment, transaction=transaction)
            else:
                count += assign_to_target(
                    target=dest,
                    name=f"{regex.prefix}{group.group}",
                    value=captured,
                    segment=segment,
                    transaction=transaction,
                )
    return count
