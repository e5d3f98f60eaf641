"""OpenTelemetry SDK span processor feeding the segment/transaction model.

Register it on a tracer provider::

    provider = TracerProvider()
    provider.add_span_processor(SpanProcessor(agent))

``on_start`` synthesizes a segment (and, for root server/consumer spans, a
transaction) and keeps the result in a side map keyed by span. ``on_end``
copies status, timing, errors, links, events and attributes onto the
segment, drops the side-map entry and, for the span that started the
transaction, names and ends it.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from opentelemetry.sdk import trace as sdk_trace
from opentelemetry.trace import StatusCode

from otelbridge.constants import SPAN_STATUS_CODE
from otelbridge.rules.spec import Target, TransactionTransform
from otelbridge.rules.templates import (
    assign_to_target,
    extract_attribute_value,
    process_regex,
    transform_template,
)
from otelbridge.synthesis.aws import add_aws_linking_attributes
from otelbridge.synthesis.exceptions import errors_from_events
from otelbridge.synthesis.reconciler import HOST_KEYS, AttributeReconciler
from otelbridge.synthesis.synthesizer import SegmentSynthesizer, SynthesisResult
from otelbridge.trace.attributes import Destination
from otelbridge.trace.span import (
    SpanLinkRecord,
    TimedEvent,
    duration_ms,
    kind_name,
    span_attributes,
    span_id_hex,
    span_key,
    trace_id_hex,
)
from otelbridge.util.urls import parse_url, scrub

if TYPE_CHECKING:
    from otelbridge.agent import Agent
    from otelbridge.trace.segment import Segment
    from otelbridge.trace.transaction import Transaction

_ROOT_KINDS = frozenset({"server", "consumer"})


class SpanProcessor(sdk_trace.SpanProcessor):
    """Turns SDK spans into segments and transactions of *agent*."""

    def __init__(self, agent: Agent, logger: logging.Logger | None = None) -> None:
        self.agent = agent
        self.logger = logger or logging.getLogger("otelbridge.processor")
        self.synthesizer = SegmentSynthesizer(agent)
        self.reconciler = AttributeReconciler(hostname=agent.config.hostname)
        #: Provider this processor is registered on, when installed through ``otelbridge.install``.
        self.tracer_provider: Any = None
        self._results: dict[tuple[int, int], SynthesisResult] = {}
        # Segments by span, kept until their transaction ends.
        self._segments: dict[tuple[int, int], Segment] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # SDK hooks
    # ------------------------------------------------------------------

    def on_start(self, span: Any, parent_context: Any = None) -> None:
        parent = self._resolve_parent(span)
        result = self.synthesizer.synthesize(span, parent)
        if result is None:
            return
        key = span_key(span.context)
        with self._lock:
            self._results[key] = result
            self._segments[key] = result.segment

    def on_end(self, span: Any) -> None:
        key = span_key(span.context)
        with self._lock:
            result = self._results.get(key)
        if result is None:
            return

        segment = result.segment
        transaction = result.transaction
        try:
            self.update_status(segment, span)
            self.add_scope_attributes(segment, span)
            self.update_duration(segment, span)
            self.handle_error(segment, transaction, span)
            self.reconcile_links(segment, span)
            self.reconcile_events(segment, span)
            self.reconcile_attributes(result, span)
        finally:
            with self._lock:
                self._results.pop(key, None)

        if result.owns_transaction and kind_name(span) in _ROOT_KINDS and transaction is not None:
            self.finalize_transaction(
                transaction,
                result.transaction_transform or TransactionTransform(),
                segment,
                span,
            )

    def shutdown(self) -> None:
        with self._lock:
            pending = len(self._results)
            self._results.clear()
            self._segments.clear()
        if pending:
            self.logger.debug("Dropped %d unfinished spans on shutdown", pending)

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True

    @property
    def pending(self) -> int:
        """Number of spans started but not yet ended."""
        with self._lock:
            return len(self._results)

    def get_result(self, span: Any) -> SynthesisResult | None:
        """Synthesis result of a started, not yet ended span."""
        with self._lock:
            return self._results.get(span_key(span.context))

    def _resolve_parent(self, span: Any) -> Segment | None:
        parent_key = span_key(getattr(span, "parent", None))
        if parent_key is not None:
            with self._lock:
                parent = self._segments.get(parent_key)
            if parent is not None and parent.transaction is not None and parent.transaction.is_active():
                return parent
        return self.agent.trace_context.get_active_segment()

    def _forget_transaction(self, transaction: Transaction) -> None:
        with self._lock:
            stale = [key for key, segment in self._segments.items() if segment.transaction is transaction]
            for key in stale:
                del self._segments[key]

    # ------------------------------------------------------------------
    # on_end steps
    # ------------------------------------------------------------------

    def update_status(self, segment: Segment, span: Any) -> None:
        status = span.status
        code = status.status_code
        segment.add_attribute("status.code", SPAN_STATUS_CODE.get(code.value, code.name.lower()))
        if code is StatusCode.ERROR and status.description:
            segment.add_attribute("status.description", status.description)

    def add_scope_attributes(self, segment: Segment, span: Any) -> None:
        scope = getattr(span, "instrumentation_scope", None)
        if scope is None:
            return
        for alias in ("otel.scope", "otel.library"):
            if scope.name:
                segment.add_attribute(f"{alias}.name", scope.name)
            if scope.version:
                segment.add_attribute(f"{alias}.version", scope.version)

    def update_duration(self, segment: Segment, span: Any) -> None:
        millis = duration_ms(span)
        if millis is None:
            segment.touch()
            return
        segment.overwrite_duration_ms(millis)

    def handle_error(self, segment: Segment, transaction: Transaction | None, span: Any) -> None:
        """Record every ``exception`` event of an errored span."""
        if span.status.status_code is not StatusCode.ERROR:
            return
        for error in errors_from_events(span.events, segment.name):
            self.agent.errors.add(transaction, error, segment)

    def reconcile_links(self, segment: Segment, span: Any) -> None:
        for link in span.links or ():
            segment.add_span_link(
                SpanLinkRecord(
                    trace_id=trace_id_hex(link.context),
                    span_id=span_id_hex(link.context),
                    timestamp=span.end_time,
                    attributes=dict(link.attributes or {}),
                )
            )

    def reconcile_events(self, segment: Segment, span: Any) -> None:
        for event in span.events or ():
            segment.add_timed_event(
                TimedEvent(
                    name=event.name,
                    timestamp=event.timestamp,
                    attributes=dict(event.attributes or {}),
                )
            )

    def reconcile_attributes(self, result: SynthesisResult, span: Any) -> None:
        """Apply the rule's attribute directives, then copy what is left."""
        config = self.agent.config
        segment = result.segment
        attributes = span_attributes(span)
        exclude: set[str] = set()

        for mapping in result.rule.attributes:
            if mapping.high_security and config.high_security:
                self.logger.debug(
                    "Not adding attribute %s to %s because it gets dropped as part of high_security mode.",
                    mapping.key or mapping.name,
                    mapping.target.value,
                )
                if mapping.key:
                    exclude.add(mapping.key)
                continue

            value = extract_attribute_value(mapping, attributes, exclude)
            if value is None:
                continue

            # Transaction fields are only written by the span that owns the transaction.
            transaction = result.transaction
            if mapping.target is Target.TRANSACTION and not result.owns_transaction:
                transaction = None

            if mapping.regex is not None:
                process_regex(mapping.regex, value, target=mapping.target, segment=segment, transaction=transaction)
                continue

            if mapping.key in HOST_KEYS or mapping.name in HOST_KEYS:
                value = self.reconciler.resolve_host(value)
            assign_to_target(
                target=mapping.target,
                name=mapping.name,
                value=value,
                segment=segment,
                transaction=transaction,
            )

        self.reconciler.reconcile(segment, attributes, exclude)
        if config.cloud_aws_account_id:
            add_aws_linking_attributes(segment, attributes, config.cloud_aws_account_id)

    # ------------------------------------------------------------------
    # Transaction finalization
    # ------------------------------------------------------------------

    def finalize_transaction(
        self,
        transaction: Transaction,
        transform: TransactionTransform,
        segment: Segment,
        span: Any,
    ) -> None:
        """Apply naming inputs from *transform* and end *transaction*."""
        attributes = span_attributes(span)
        name_state = transaction.name_state
        naming = transform.name

        transaction.set_type(transform.type)
        if naming.prefix and naming.prefix in attributes:
            name_state.set_prefix(attributes[naming.prefix])
        if naming.verb and naming.verb in attributes:
            name_state.set_verb(attributes[naming.verb])
        if naming.path and naming.path in attributes:
            name_state.append_path(attributes[naming.path])
        if naming.template_path:
            name_state.append_path(transform_template(naming.template_path, attributes))

        if naming.template_value:
            transaction.set_partial_name(transform_template(naming.template_value, attributes))
            segment.set_name_from_transaction(transaction)
        if naming.value:
            transaction.set_partial_name(naming.value)
            segment.set_name_from_transaction(transaction)

        if transaction.is_web():
            self.finalize_web_transaction(transaction, transform, attributes)

        try:
            transaction.end()
        finally:
            self._forget_transaction(transaction)

    def finalize_web_transaction(
        self,
        transaction: Transaction,
        transform: TransactionTransform,
        attributes: dict[str, Any],
    ) -> None:
        """Resolve the request URL, copy route parameters and fold the status code into the name."""
        url_transform = transform.url
        raw_url: Any = None
        if url_transform.template:
            raw_url = transform_template(url_transform.template, attributes, url_transform.mappings)
        elif url_transform.key:
            raw_url = attributes.get(url_transform.key)

        if raw_url is not None:
            try:
                path = scrub(parse_url(raw_url))
            except ValueError as exc:
                self.logger.debug("Could not parse URL from span for transaction URL: %s, err: %s", raw_url, exc)
                transaction.url = raw_url
            else:
                transaction.url = self.agent.url_obfuscator(path)
                transaction.apply_user_naming_rules(path)
                if transaction.name_state.is_empty():
                    transaction.name_state.append_path_if_empty(transaction.url)
                    transaction.named_from_path = True

        if not self.agent.config.high_security:
            transaction.name_state.for_each_params(
                lambda params: self._add_route_parameters(transaction, params)
            )

        if transaction.status_code is not None:
            transaction.finalize_name_from_web(transaction.status_code)

    @staticmethod
    def _add_route_parameters(transaction: Transaction, params: dict[str, Any]) -> None:
        for key, value in params.items():
            transaction.trace.add_attribute(Destination.COMMON, f"request.parameters.{key}", value)
