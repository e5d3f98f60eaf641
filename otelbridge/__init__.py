"""otelbridge: OpenTelemetry span to APM segment/transaction bridge."""

from __future__ import annotations

__version__ = "0.1.0"

from otelbridge.agent import Agent
from otelbridge.api import create_agent, install
from otelbridge.config import BridgeConfig
from otelbridge.synthesis.processor import SpanProcessor

__all__ = [
    "__version__",
    "Agent",
    "BridgeConfig",
    "SpanProcessor",
    "create_agent",
    "install",
]
