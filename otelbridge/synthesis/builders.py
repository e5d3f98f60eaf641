"""Per-rule-type segment builders.

Every builder has the signature ``builder(synthesizer, span, rule, parent)``
and returns a :class:`SynthesisResult` or ``None``. *parent* is the segment
the span was started under, already resolved by the caller; it is ``None``
for a span with no known parent.

Builders never raise on malformed span attributes. Missing naming inputs
degrade to ``Unknown`` (or ``/unknown`` for external paths).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Mapping, Sequence

from otelbridge.constants import ATTR_MESSAGING_SYSTEM, UNKNOWN
from otelbridge.metrics.recorders import (
    ParsedStatement,
    datastore_operation_recorder,
    datastore_query_recorder,
    external_recorder,
    record_generic,
    record_message,
)
from otelbridge.rules.spec import Rule, RuleType, TransactionTransform
from otelbridge.rules.templates import transform_template
from otelbridge.trace.segment import Segment
from otelbridge.trace.span import span_attributes, span_id_hex, trace_id_hex
from otelbridge.trace.transaction import Transaction, TransactionType
from otelbridge.util.sql import classify
from otelbridge.util.urls import parse_parameters, parse_url, scrub

if TYPE_CHECKING:
    from otelbridge.synthesis.synthesizer import SegmentSynthesizer

#: Transport recorded on transactions started by server spans.
SERVER_TRANSPORT = "HTTPS"

#: Path used in external names when the URL is missing or unparsable.
UNKNOWN_PATH = "/unknown"

DEFAULT_EXTERNAL_TEMPLATE = "External/${host}${path}"


@dataclass
class SynthesisResult:
    """What a span turned into.

    Attributes:
        segment: Segment created for the span.
        transaction: Transaction the segment belongs to.
        rule: Matched rule.
        owns_transaction: ``True`` only when this span started *transaction*;
            exactly that span ends it.
        transaction_transform: Naming inputs applied when the owning span
            ends. ``None`` for demoted server/consumer spans.
    """

    segment: Segment
    transaction: Transaction | None
    rule: Rule
    owns_transaction: bool = False
    transaction_transform: TransactionTransform | None = None


Builder = Callable[["SegmentSynthesizer", Any, Rule, "Segment | None"], "SynthesisResult | None"]


def first_present(attributes: Mapping[str, Any], keys: Sequence[str]) -> Any:
    """Value of the first key in *keys* present in *attributes*."""
    for key in keys:
        value = attributes.get(key)
        if value is not None and value != "":
            return value
    return None


def _child_segment(
    synthesizer: SegmentSynthesizer,
    span: Any,
    rule: Rule,
    parent: Segment | None,
    name: str,
    recorder: Any,
) -> SynthesisResult | None:
    if parent is None or parent.transaction is None:
        synthesizer.logger.debug(
            "No active transaction for %s span %s (rule %s), skipping", rule.type.value, span.name, rule.name
        )
        return None
    segment = synthesizer.trace_context.create_segment(
        name=name,
        parent=parent,
        id=span_id_hex(span.context),
        recorder=recorder,
        transaction=parent.transaction,
    )
    return SynthesisResult(segment=segment, transaction=parent.transaction, rule=rule)


def _is_nested(parent: Segment | None) -> bool:
    return parent is not None and parent.transaction is not None and parent.transaction.is_active()


def _start_transaction(
    synthesizer: SegmentSynthesizer,
    span: Any,
    rule: Rule,
    default_type: TransactionType,
    transport: str | None,
) -> SynthesisResult:
    transform = rule.transaction_transform
    transaction = Transaction(
        synthesizer.agent,
        trace_id=trace_id_hex(span.context),
        type=default_type,
    )
    transaction.set_type(transform.type)
    transaction.accept_trace_context(span_id_hex(getattr(span, "parent", None)), transport)

    segment = synthesizer.trace_context.create_segment(
        name=span.name,
        parent=transaction.trace.root,
        id=span_id_hex(span.context),
        transaction=transaction,
    )
    transaction.base_segment = segment
    synthesizer.logger.debug(
        "Started %s transaction %s for span %s", transaction.type.value, transaction.id, span.name
    )
    return SynthesisResult(
        segment=segment,
        transaction=transaction,
        rule=rule,
        owns_transaction=True,
        transaction_transform=transform,
    )


# ----------------------------------------------------------------------
# Builders
# ----------------------------------------------------------------------


def build_internal(
    synthesizer: SegmentSynthesizer, span: Any, rule: Rule, parent: Segment | None
) -> SynthesisResult | None:
    """Child segment named after the span."""
    return _child_segment(synthesizer, span, rule, parent, span.name, record_generic)


def build_server(
    synthesizer: SegmentSynthesizer, span: Any, rule: Rule, parent: Segment | None
) -> SynthesisResult | None:
    """New web transaction, or an internal segment inside an active one."""
    if _is_nested(parent):
        return build_internal(synthesizer, span, rule, parent)
    return _start_transaction(synthesizer, span, rule, TransactionType.WEB, SERVER_TRANSPORT)


def build_consumer(
    synthesizer: SegmentSynthesizer, span: Any, rule: Rule, parent: Segment | None
) -> SynthesisResult | None:
    """New message transaction, or an internal segment inside an active one."""
    if _is_nested(parent):
        return build_internal(synthesizer, span, rule, parent)
    transport = span_attributes(span).get(ATTR_MESSAGING_SYSTEM)
    return _start_transaction(synthesizer, span, rule, TransactionType.MESSAGE, transport)


def build_producer(
    synthesizer: SegmentSynthesizer, span: Any, rule: Rule, parent: Segment | None
) -> SynthesisResult | None:
    template = rule.segment_transform.name.template
    name = transform_template(template, span_attributes(span)) if template else span.name
    return _child_segment(synthesizer, span, rule, parent, name, record_message)


def _external_host(transform: Any, attributes: Mapping[str, Any]) -> str:
    if transform.host_template:
        return transform_template(transform.host_template, attributes)
    host = first_present(attributes, transform.host)
    return str(host) if host is not None else UNKNOWN


def build_external(
    synthesizer: SegmentSynthesizer, span: Any, rule: Rule, parent: Segment | None
) -> SynthesisResult | None:
    """``External/<host><path>`` segment for an outbound client call."""
    attributes = span_attributes(span)
    transform = rule.segment_transform
    host = _external_host(transform, attributes)

    path = UNKNOWN_PATH
    url = first_present(attributes, transform.url)
    parts = None
    if url is not None:
        try:
            parts = parse_url(url)
            path = synthesizer.agent.url_obfuscator(scrub(parts))
        except ValueError as exc:
            synthesizer.logger.debug("Could not parse URL %s: %s", url, exc)
            parts = None

    template = transform.name.template or DEFAULT_EXTERNAL_TEMPLATE
    name = transform_template(template, {**attributes, "host": host, "path": path})
    result = _child_segment(synthesizer, span, rule, parent, name, external_recorder(host))
    if result is None:
        return None

    if parts is not None:
        result.segment.add_attribute("url", f"{parts.scheme}://{parts.netloc}{path}")
        if not synthesizer.config.high_security:
            for key, value in parse_parameters(parts).items():
                result.segment.add_span_attribute(f"request.parameters.{key}", value)
    return result


def _first_word(operation: Any) -> str:
    text = str(operation).strip()
    return text.split(" ", 1)[0] if text else UNKNOWN


def build_db(
    synthesizer: SegmentSynthesizer, span: Any, rule: Rule, parent: Segment | None
) -> SynthesisResult | None:
    """Datastore segment.

    Naming, in order of preference: collection and operation attributes
    as-is; a classified raw statement; the first word of the operation;
    the system alone.
    """
    attributes = span_attributes(span)
    transform = rule.segment_transform
    system = str(first_present(attributes, transform.system) or UNKNOWN)
    statement = first_present(attributes, transform.statement)
    collection = first_present(attributes, transform.collection)
    operation = first_present(attributes, transform.operation)

    parsed: ParsedStatement | None = None
    if collection is not None and operation is not None:
        parsed = ParsedStatement(system=system, operation=str(operation), collection=str(collection))
    elif statement is not None:
        sql = classify(statement)
        parsed = ParsedStatement(system=system, operation=sql.operation, collection=sql.collection, raw=sql.query)

    if parsed is not None:
        name = parsed.statement_metric or parsed.operation_metric
        recorder = datastore_query_recorder(parsed)
    elif operation is not None:
        name = f"Datastore/operation/{system}/{_first_word(operation)}"
        recorder = datastore_operation_recorder(system)
    else:
        name = f"Datastore/{system}"
        recorder = datastore_operation_recorder(system)

    result = _child_segment(synthesizer, span, rule, parent, name, recorder)
    if result is not None:
        result.segment.add_attribute("product", system)
        if parsed is not None and parsed.collection:
            result.segment.add_attribute("collection", parsed.collection)
    return result


#: One builder per :class:`RuleType`.
BUILDERS: dict[RuleType, Builder] = {
    RuleType.SERVER: build_server,
    RuleType.CONSUMER: build_consumer,
    RuleType.PRODUCER: build_producer,
    RuleType.EXTERNAL: build_external,
    RuleType.DB: build_db,
    RuleType.INTERNAL: build_internal,
}

_missing = set(RuleType).difference(BUILDERS)
if _missing:
    raise RuntimeError(f"No builder for rule types: {sorted(t.value for t in _missing)}")
