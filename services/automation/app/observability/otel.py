"""OpenTelemetry helpers for the automation service."""
from __future__ import annotations

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from ..config import AutomationSettings, get_settings

_configured = False


def configure_telemetry(settings: AutomationSettings | None = None) -> TracerProvider | None:
    """Install tracer and meter providers; exporters only when an endpoint is set."""
    global _configured
    if _configured:
        return None
    settings = settings or get_settings()
    observability = settings.observability
    resource = Resource(
        attributes={SERVICE_NAME: observability.otel_service_name, "deployment.environment": settings.environment}
    )

    tracer_provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(tracer_provider)

    if observability.otel_exporter_otlp_endpoint:
        endpoint = observability.otel_exporter_otlp_endpoint.rstrip("/")
        tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=f"{endpoint}/v1/traces")))

        reader = PeriodicExportingMetricReader(OTLPMetricExporter(endpoint=f"{endpoint}/v1/metrics"))
        metrics.set_meter_provider(MeterProvider(resource=resource, metric_readers=[reader]))

    _configured = True
    return tracer_provider


__all__ = ["configure_telemetry"]
