"""Rule table data structures.

A rule table is a JSON array of records shaped like::

    {
      "name": "OtelHttpServer1_23",
      "type": "server",
      "matcher": {
        "required_span_kinds": ["server"],
        "required_attribute_keys": ["http.request.method"],
        "attribute_conditions": {"rpc.system": ["grpc", "connect_rpc"]}
      },
      "attributes": [{"key": "http.request.method", "target": "segment", "name": "request.method"}],
      "transaction": {"type": "web", "name": {"verb": "http.request.method", "path": "http.route"}},
      "segment": {}
    }

Everything is parsed and validated once, up front, into frozen
dataclasses. Malformed records raise :class:`RuleLoadError`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from otelbridge.rules.expressions import CompiledExpression, ExpressionError
from otelbridge.rules.templates import build_rule_mappings


class RuleLoadError(ValueError):
    """Raised when a rule table or a rule record is malformed."""


class RuleType(str, Enum):
    """Builder strategy selected by a rule."""

    SERVER = "server"
    CONSUMER = "consumer"
    PRODUCER = "producer"
    EXTERNAL = "external"
    DB = "db"
    INTERNAL = "internal"


class Target(str, Enum):
    """Where an attribute directive writes its value."""

    SEGMENT = "segment"
    TRANSACTION = "transaction"
    TRACE = "trace"


SPAN_KINDS = ("server", "client", "producer", "consumer", "internal")

_FALLBACK = re.compile(r"fallback", re.I)
_JS_NAMED_GROUP = re.compile(r"\(\?<(?![=!])")


def _keys(value: Any) -> tuple[str, ...]:
    """Normalize a single key or a list of candidate keys."""
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


def _compile_mappings(mappings: list[dict[str, Any]] | None) -> dict[str, CompiledExpression]:
    try:
        return build_rule_mappings(mappings)
    except KeyError as exc:
        raise RuleLoadError(f"Mapping is missing {exc.args[0]!r}") from exc
    except ExpressionError as exc:
        raise RuleLoadError(str(exc)) from exc


# ----------------------------------------------------------------------
# Regex extraction
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class RegexGroup:
    """A named capture group; either recurses into ``regex`` or is assigned."""

    group: str
    regex: RegexSpec | None = None


@dataclass(frozen=True)
class RegexSpec:
    """Regex applied to an extracted attribute value.

    Attributes:
        statement: Pattern source, Python or JavaScript named-group syntax.
        pattern: Compiled pattern.
        is_global: ``g`` flag; iterate every match instead of the first.
        name: Group whose text becomes the attribute name (with ``value``).
        value: Group whose text becomes the attribute value (with ``name``).
        prefix: Prepended to every assigned attribute name.
        target: Destination override for this regex.
        groups: Named groups to walk for every match.
    """

    statement: str
    pattern: re.Pattern[str]
    is_global: bool = False
    name: str | None = None
    value: str | None = None
    prefix: str = ""
    target: Target | None = None
    groups: tuple[RegexGroup, ...] = ()

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> RegexSpec:
        statement = d.get("statement")
        if not isinstance(statement, str):
            raise RuleLoadError("regex.statement must be a string")
        flags_text = d.get("flags") or ""
        flags = 0
        for ch in flags_text:
            if ch == "i":
                flags |= re.I
            elif ch == "m":
                flags |= re.M
            elif ch == "s":
                flags |= re.S
            elif ch != "g":
                raise RuleLoadError(f"Unsupported regex flag {ch!r}")
        try:
            pattern = re.compile(_JS_NAMED_GROUP.sub("(?P<", statement), flags)
        except re.error as exc:
            raise RuleLoadError(f"Invalid regex {statement!r}: {exc}") from exc

        groups = []
        for g in d.get("groups") or []:
            if isinstance(g, str):
                groups.append(RegexGroup(group=g))
                continue
            nested = cls.from_dict(g["regex"]) if g.get("regex") else None
            groups.append(RegexGroup(group=g["group"], regex=nested))

        for group in [d.get("name"), d.get("value"), *(g.group for g in groups)]:
            if group and group not in pattern.groupindex:
                raise RuleLoadError(f"Regex {statement!r} has no group named {group!r}")

        return cls(
            statement=statement,
            pattern=pattern,
            is_global="g" in flags_text,
            name=d.get("name"),
            value=d.get("value"),
            prefix=d.get("prefix") or "",
            target=Target(d["target"]) if d.get("target") else None,
            groups=tuple(groups),
        )


# ----------------------------------------------------------------------
# Attribute directives
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class AttributeMapping:
    """One entry of a rule's ``attributes`` list.

    Exactly one of ``key`` (copy a span attribute), ``value`` (literal) or
    ``template`` is the source.
    """

    name: str | None
    target: Target = Target.SEGMENT
    key: str | None = None
    value: Any = None
    template: str | None = None
    high_security: bool = False
    mappings: Mapping[str, CompiledExpression] = field(default_factory=dict)
    regex: RegexSpec | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> AttributeMapping:
        sources = [s for s in ("key", "value", "template") if s in d]
        if not sources:
            raise RuleLoadError(f"Attribute mapping needs one of key/value/template: {d!r}")
        try:
            target = Target(d.get("target", "segment"))
        except ValueError as exc:
            raise RuleLoadError(f"Unknown attribute target {d.get('target')!r}") from exc
        name = d.get("name", d.get("key"))
        regex = RegexSpec.from_dict(d["regex"]) if d.get("regex") else None
        if name is None and regex is None:
            raise RuleLoadError(f"Attribute mapping needs a name: {d!r}")
        return cls(
            name=name,
            target=target,
            key=d.get("key"),
            value=d.get("value"),
            template=d.get("template"),
            high_security=bool(d.get("highSecurity", False)),
            mappings=_compile_mappings(d.get("mappings")),
            regex=regex,
        )


# ----------------------------------------------------------------------
# Transforms
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class NameTransform:
    """Naming inputs. ``prefix``/``verb``/``path`` are span attribute keys."""

    template: str | None = None
    value: str | None = None
    prefix: str | None = None
    verb: str | None = None
    path: str | None = None
    template_path: str | None = None
    template_value: str | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> NameTransform:
        d = d or {}
        return cls(
            template=d.get("template"),
            value=d.get("value"),
            prefix=d.get("prefix"),
            verb=d.get("verb"),
            path=d.get("path"),
            template_path=d.get("templatePath"),
            template_value=d.get("templateValue"),
        )


@dataclass(frozen=True)
class UrlTransform:
    template: str | None = None
    key: str | None = None
    mappings: Mapping[str, CompiledExpression] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> UrlTransform:
        d = d or {}
        return cls(template=d.get("template"), key=d.get("key"), mappings=_compile_mappings(d.get("mappings")))


@dataclass(frozen=True)
class TransactionTransform:
    type: str | None = None
    name: NameTransform = field(default_factory=NameTransform)
    url: UrlTransform = field(default_factory=UrlTransform)

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> TransactionTransform:
        d = d or {}
        return cls(type=d.get("type"), name=NameTransform.from_dict(d.get("name")), url=UrlTransform.from_dict(d.get("url")))


@dataclass(frozen=True)
class SegmentTransform:
    """Segment naming inputs. Key fields hold candidate keys in priority order."""

    name: NameTransform = field(default_factory=NameTransform)
    host: tuple[str, ...] = ()
    host_template: str | None = None
    url: tuple[str, ...] = ()
    system: tuple[str, ...] = ()
    statement: tuple[str, ...] = ()
    collection: tuple[str, ...] = ()
    operation: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> SegmentTransform:
        d = d or {}
        host = d.get("host")
        host_template = None
        if isinstance(host, dict):
            host_template = host.get("template")
            host = host.get("key")
        return cls(
            name=NameTransform.from_dict(d.get("name")),
            host=_keys(host),
            host_template=host_template,
            url=_keys(d.get("url")),
            system=_keys(d.get("system")),
            statement=_keys(d.get("statement")),
            collection=_keys(d.get("collection")),
            operation=_keys(d.get("operation")),
        )


# ----------------------------------------------------------------------
# Rule
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class Rule:
    """An immutable span-to-segment mapping rule.

    Attributes:
        name: Unique rule name. Names containing ``fallback`` mark fallback rules.
        type: :class:`RuleType` builder strategy.
        span_kinds: Lower-case span kinds the rule applies to.
        required_attribute_keys: Keys that must all be present.
        attribute_conditions: ``key -> value`` (equality) or ``key -> tuple``
            (membership) conditions.
        attributes: Attribute directives applied when the span ends.
        transaction_transform: Transaction naming inputs.
        segment_transform: Segment naming inputs.
    """

    name: str
    type: RuleType
    span_kinds: frozenset[str]
    required_attribute_keys: tuple[str, ...] = ()
    attribute_conditions: Mapping[str, Any] = field(default_factory=dict)
    attributes: tuple[AttributeMapping, ...] = ()
    transaction_transform: TransactionTransform = field(default_factory=TransactionTransform)
    segment_transform: SegmentTransform = field(default_factory=SegmentTransform)

    @property
    def is_fallback(self) -> bool:
        return bool(_FALLBACK.search(self.name))

    def matches(self, attributes: Mapping[str, Any]) -> bool:
        """``True`` iff every required key is present and every condition holds."""
        for key in self.required_attribute_keys:
            if key not in attributes:
                return False
        for key, expected in self.attribute_conditions.items():
            actual = attributes.get(key)
            if isinstance(expected, tuple):
                if actual not in expected:
                    return False
            elif actual != expected:
                return False
        return True

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Rule:
        name = d.get("name")
        if not name:
            raise RuleLoadError(f"Rule without a name: {d!r}")
        try:
            rule_type = RuleType(d.get("type"))
        except ValueError as exc:
            raise RuleLoadError(f"Rule {name!r} has unknown type {d.get('type')!r}") from exc

        matcher = d.get("matcher")
        if not isinstance(matcher, dict) or "required_span_kinds" not in matcher:
            raise RuleLoadError(f"Rule {name!r}: only span matchers (required_span_kinds) are supported")
        kinds = frozenset(str(k).lower() for k in matcher["required_span_kinds"])
        unknown = kinds.difference(SPAN_KINDS)
        if unknown:
            raise RuleLoadError(f"Rule {name!r} has unknown span kinds: {', '.join(sorted(unknown))}")

        conditions = {
            key: tuple(value) if isinstance(value, list) else value
            for key, value in (matcher.get("attribute_conditions") or {}).items()
        }

        try:
            attributes = tuple(AttributeMapping.from_dict(a) for a in d.get("attributes") or [])
            tx = TransactionTransform.from_dict(d.get("transaction"))
            seg = SegmentTransform.from_dict(d.get("segment"))
        except RuleLoadError as exc:
            raise RuleLoadError(f"Rule {name!r}: {exc}") from exc

        return cls(
            name=name,
            type=rule_type,
            span_kinds=kinds,
            required_attribute_keys=tuple(matcher.get("required_attribute_keys") or ()),
            attribute_conditions=conditions,
            attributes=attributes,
            transaction_transform=tx,
            segment_transform=seg,
        )
