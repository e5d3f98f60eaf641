"""otelbridge public Python API.

Provides the primary entrypoints:
  - ``create_agent(...)`` -> Agent
  - ``install(...)`` -> SpanProcessor registered on a tracer provider
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from opentelemetry.sdk.trace import TracerProvider

from otelbridge.agent import Agent
from otelbridge.config import BridgeConfig
from otelbridge.synthesis.processor import SpanProcessor

logger = logging.getLogger("otelbridge")


def create_agent(config: BridgeConfig | dict[str, Any] | str | Path | None = None) -> Agent:
    """Build an :class:`Agent`.

    Parameters:
        config: A :class:`BridgeConfig`, a configuration mapping, or a path
            to a JSON configuration file. ``None`` uses the defaults.
    """
    if isinstance(config, (str, Path)):
        config = BridgeConfig.from_file(config)
    elif isinstance(config, dict) or config is None:
        config = BridgeConfig.from_dict(config)
    return Agent(config)


def install(
    tracer_provider: TracerProvider | None = None,
    agent: Agent | None = None,
    config: BridgeConfig | dict[str, Any] | str | Path | None = None,
) -> SpanProcessor:
    """Register a :class:`SpanProcessor` on *tracer_provider*.

    A new ``TracerProvider`` is created when none is given; it is reachable
    through the returned processor's ``tracer_provider`` attribute.
    """
    agent = agent or create_agent(config)
    provider = tracer_provider or TracerProvider()
    processor = SpanProcessor(agent)
    provider.add_span_processor(processor)
    processor.tracer_provider = provider
    logger.debug("Installed span processor with %d rules", len(agent.rules_engine))
    return processor
