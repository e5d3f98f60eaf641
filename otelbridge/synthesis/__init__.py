"""Span synthesis: builders, attribute reconciliation and the span processor."""

from __future__ import annotations

__all__ = [
    "AttributeReconciler",
    "SegmentSynthesizer",
    "SpanProcessor",
    "SynthesisResult",
]

from otelbridge.synthesis.processor import SpanProcessor
from otelbridge.synthesis.reconciler import AttributeReconciler
from otelbridge.synthesis.synthesizer import SegmentSynthesizer, SynthesisResult
