"""
OpenTelemetry Setup

- One trace span per inbound webhook message (tenant, message type, outcome)
- OTLP export when OTEL_EXPORTER_OTLP_ENDPOINT is configured
"""
from __future__ import annotations
from typing import Optional
import os


def setup_otel(
    service_name: str = "twitch-game-bridge",
    endpoint: Optional[str] = None,
):
    """Initialize OpenTelemetry with OTLP exporter."""
    try:
        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.sdk.resources import Resource

        resource = Resource.create({"service.name": service_name})
        provider = TracerProvider(resource=resource)

        otlp_endpoint = endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
        if otlp_endpoint:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
            exporter = OTLPSpanExporter(endpoint=otlp_endpoint)
            provider.add_span_processor(BatchSpanProcessor(exporter))

        trace.set_tracer_provider(provider)
        return trace.get_tracer(service_name)

    except ImportError:
        # Tracing is optional; callers accept a None tracer
        return None


def create_webhook_span(tracer, tenant_id: str, message_type: str):
    """Create a span for one inbound webhook message."""
    if tracer is None:
        return None
    return tracer.start_span(
        "webhook.eventsub",
        attributes={
            "tenant.id": tenant_id,
            "webhook.message_type": message_type or "unknown",
        },
    )
