"""Shared fixtures: agents, processors and an SDK tracer wired to them."""

from __future__ import annotations

import itertools
from typing import Any

import pytest
from opentelemetry.sdk.trace import TracerProvider

from otelbridge.agent import Agent
from otelbridge.config import BridgeConfig
from otelbridge.synthesis.processor import SpanProcessor
from otelbridge.synthesis.synthesizer import SegmentSynthesizer
from otelbridge.trace.span import span_from_dict

TRACE_ID = "4bf92f3577b34da6a3ce929d0e0e4736"

_span_ids = itertools.count(1)


def _make_span(
    kind: str = "internal",
    attributes: dict[str, Any] | None = None,
    name: str = "test-span",
    parent: Any = None,
    **extra: Any,
):
    """Finished ``ReadableSpan`` with a fresh span id in :data:`TRACE_ID`."""
    doc: dict[str, Any] = {
        "name": name,
        "kind": kind,
        "trace_id": TRACE_ID,
        "span_id": format(next(_span_ids), "016x"),
        "attributes": attributes or {},
        "start_time": 1_000_000_000,
        "end_time": 1_250_000_000,
    }
    if parent is not None:
        doc["parent_span_id"] = format(parent.context.span_id, "016x")
    doc.update(extra)
    return span_from_dict(doc)


@pytest.fixture
def config() -> BridgeConfig:
    return BridgeConfig(hostname="test-host")


@pytest.fixture
def agent(config: BridgeConfig) -> Agent:
    return Agent(config)


@pytest.fixture
def synthesizer(agent: Agent) -> SegmentSynthesizer:
    return SegmentSynthesizer(agent)


@pytest.fixture
def processor(agent: Agent) -> SpanProcessor:
    return SpanProcessor(agent)


@pytest.fixture
def tracer(processor: SpanProcessor):
    provider = TracerProvider()
    provider.add_span_processor(processor)
    yield provider.get_tracer("otelbridge-tests", "1.2.3")
    provider.shutdown()


@pytest.fixture
def make_span():
    """Factory for finished spans, see :func:`_make_span`."""
    return _make_span
