from __future__ import annotations

from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from leaddesk.core.config import get_settings
from leaddesk.middleware.correlation_id import accepted_correlation_id

_provider: TracerProvider | None = None
_exporters_attached = False


def tracer_provider(service_name: str) -> TracerProvider:
    """Process-wide provider. The global one can only be installed once."""
    global _provider
    if _provider is None:
        settings = get_settings()
        resource = Resource.create(
            {
                "service.name": service_name,
                "service.version": settings.app_version,
                "deployment.environment": settings.app_env,
            }
        )
        _provider = TracerProvider(resource=resource)
        trace.set_tracer_provider(_provider)
    return _provider


def setup_otel(service_name: str) -> TracerProvider | None:
    global _exporters_attached

    settings = get_settings()
    if not settings.otel_enabled:
        return None

    provider = tracer_provider(service_name)
    if _exporters_attached:
        return provider

    if settings.otel_exporter_otlp_endpoint:
        exporter = OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)
        provider.add_span_processor(BatchSpanProcessor(exporter))
    if settings.otel_console_exporter:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    _exporters_attached = True
    return provider


def setup_inmemory_otel(service_name: str = "leaddesk-api") -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    tracer_provider(service_name).add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)


def correlation_request_hook(span: trace.Span | None, scope: dict[str, Any]) -> None:
    """Tag the server span with the caller's correlation id before any middleware runs."""
    if span is None or not span.is_recording():
        return
    headers = {key.decode("latin-1"): value.decode("latin-1") for key, value in scope.get("headers", [])}
    correlation_id = accepted_correlation_id(headers)
    if correlation_id:
        span.set_attribute("correlation_id", correlation_id)
