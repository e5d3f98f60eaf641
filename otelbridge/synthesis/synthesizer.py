"""Span -> segment/transaction synthesis."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from otelbridge.synthesis.builders import BUILDERS, SynthesisResult
from otelbridge.trace.span import kind_name

if TYPE_CHECKING:
    from otelbridge.agent import Agent
    from otelbridge.trace.segment import Segment

__all__ = ["SegmentSynthesizer", "SynthesisResult"]


class SegmentSynthesizer:
    """Matches a span to a rule and runs the rule type's builder.

    Parameters
    ----------
    agent : Agent
        Supplies the rules engine, configuration and trace context.
    logger : logging.Logger, optional
        Defaults to the ``otelbridge.synthesis`` logger.
    """

    def __init__(self, agent: Agent, logger: logging.Logger | None = None) -> None:
        self.agent = agent
        self.logger = logger or logging.getLogger("otelbridge.synthesis")

    @property
    def config(self) -> Any:
        return self.agent.config

    @property
    def trace_context(self) -> Any:
        return self.agent.trace_context

    def synthesize(self, span: Any, parent: Segment | None = None) -> SynthesisResult | None:
        """Build the segment (and possibly transaction) for *span*.

        Returns ``None`` when no rule matches or when a non-root span has
        no parent to attach to.
        """
        rule = self.agent.rules_engine.test(span)
        if rule is None:
            self.logger.debug("Cannot match a rule to span name: %s, kind %s", span.name, kind_name(span))
            return None
        return BUILDERS[rule.type](self, span, rule, parent)
