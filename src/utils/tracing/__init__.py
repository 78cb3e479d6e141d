"""
Distributed tracing using OpenTelemetry.

Spans cover the whole run, each orchestrator phase and each relation
cycle. Without an OTLP endpoint the global tracer is a no-op, so the
instrumentation costs nothing in ordinary CLI use.
"""

from .context import add_span_attributes, add_span_event, trace_operation
from .tracer import get_tracer, initialize_tracing, shutdown_tracing

__all__ = [
    "initialize_tracing",
    "get_tracer",
    "shutdown_tracing",
    "trace_operation",
    "add_span_attributes",
    "add_span_event",
]
