"""
Optional OpenTelemetry tracing (`OTEL_ENABLED=true`).

The SDK and instrumentations live in the `otel` extra; without them tracing
stays off and a warning is logged.
"""

from __future__ import annotations

from fastapi import FastAPI

from ..settings import Settings
from .logging import get_logger

log = get_logger("otel")


def configure_otel(settings: Settings) -> None:
    if not settings.otel_enabled:
        return

    try:
        from opentelemetry import trace
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
    except ImportError:
        log.warning("otel_disabled_missing_deps")
        return

    service_name = (settings.otel_service_name or "procurement-backend").strip()
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

    endpoint = (settings.otel_exporter_otlp_endpoint or "").strip()
    exporter = OTLPSpanExporter(endpoint=endpoint) if endpoint else ConsoleSpanExporter()
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    log.info("otel_configured", exporter="otlp_http" if endpoint else "console", service_name=service_name)


def instrument_app(app: FastAPI, settings: Settings) -> None:
    """Inbound HTTP spans plus a span per DynamoDB / S3 call."""
    if not settings.otel_enabled:
        return

    try:
        from opentelemetry.instrumentation.botocore import BotocoreInstrumentor
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    except ImportError:
        log.warning("otel_instrumentation_missing")
        return

    FastAPIInstrumentor.instrument_app(app)
    BotocoreInstrumentor().instrument()
    log.info("otel_instrumented", targets=["fastapi", "botocore"])
