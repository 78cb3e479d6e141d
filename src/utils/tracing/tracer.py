"""
Tracer initialization and configuration for OpenTelemetry.
"""

import logging
import os

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

logger = logging.getLogger(__name__)

TRACER_NAME = "schema_mirror"

_provider: TracerProvider | None = None


def initialize_tracing(
    service_name: str = "schema-mirror",
    otlp_endpoint: str | None = None,
    console_export: bool = False,
) -> trace.Tracer:
    """
    Initialize distributed tracing with OpenTelemetry.

    Exporters are only attached when an endpoint is given (argument or
    OTLP_ENDPOINT) or console export is requested; otherwise the global
    provider is left untouched and spans are no-ops.

    Args:
        service_name: Name of the service for identification
        otlp_endpoint: OTLP collector endpoint (e.g. "localhost:4317")
        console_export: Also print finished spans to stdout (debugging)

    Returns:
        Tracer instance
    """
    global _provider

    if _provider is not None:
        logger.debug("Tracing already initialized, returning existing tracer")
        return get_tracer()

    otlp_endpoint = otlp_endpoint or os.getenv("OTLP_ENDPOINT")
    console_export = console_export or os.getenv("TRACE_CONSOLE", "").lower() == "true"

    if not otlp_endpoint and not console_export:
        logger.debug("No trace exporter configured, tracing is a no-op")
        return get_tracer()

    provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: service_name}))

    if otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
        )
        logger.info(f"OTLP exporter configured: {otlp_endpoint}")

    if console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        logger.info("Console span exporter configured")

    trace.set_tracer_provider(provider)
    _provider = provider

    return get_tracer()


def get_tracer() -> trace.Tracer:
    """
    Get the tracer used by schema-mirror.

    Resolves through the global provider, so it returns a no-op tracer
    until initialize_tracing installs exporters.
    """
    return trace.get_tracer(TRACER_NAME)


def shutdown_tracing() -> None:
    """Flush pending spans and shut the provider down."""
    global _provider

    if _provider is None:
        return

    try:
        _provider.shutdown()
        logger.debug("Tracing shutdown complete")
    finally:
        _provider = None
