"""
relayq OpenTelemetry Setup

Traces for queue processing: one span per execution attempt, tagged
with the request id, method, retry count and outcome. Spans from every
processor instance share the ``relayq`` service namespace and carry the
instance id, so deliveries can be followed across restarts and replicas.
"""
from __future__ import annotations
from typing import Optional
import os
import socket

SERVICE_NAMESPACE = "relayq"


def resource_attributes(
    service_name: str = "relayq",
    instance_id: Optional[str] = None,
) -> dict[str, str]:
    """OpenTelemetry resource attributes for a processor instance.

    The instance id falls back to ``RELAYQ_INSTANCE_ID`` and then the host name.
    """
    return {
        "service.name": service_name,
        "service.namespace": SERVICE_NAMESPACE,
        "service.instance.id": instance_id or os.getenv("RELAYQ_INSTANCE_ID") or socket.gethostname(),
    }


def setup_tracing(
    service_name: str = "relayq",
    endpoint: Optional[str] = None,
    instance_id: Optional[str] = None,
):
    """Install a tracer provider for queue processing and return a tracer.

    Spans are exported over OTLP when ``endpoint``, ``RELAYQ_OTLP_ENDPOINT``
    or ``OTEL_EXPORTER_OTLP_ENDPOINT`` is set. Returns None when the ``otel``
    extra is not installed; the processor then runs untraced.
    """
    try:
        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.sdk.resources import Resource
    except ImportError:
        return None

    provider = TracerProvider(
        resource=Resource.create(resource_attributes(service_name, instance_id))
    )

    otlp_endpoint = (
        endpoint
        or os.getenv("RELAYQ_OTLP_ENDPOINT")
        or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    )
    if otlp_endpoint:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))

    trace.set_tracer_provider(provider)
    return trace.get_tracer("relayq.processing")


def start_execution_span(tracer, request_id: str, method: str, retry_count: int):
    """Create a span for one execution attempt."""
    if tracer is None:
        return None
    return tracer.start_span(
        "relayq.execute",
        attributes={
            "relayq.request_id": request_id,
            "relayq.method": method,
            "relayq.retry_count": retry_count,
        },
    )


def end_span(span, outcome: str) -> None:
    if span is None:
        return
    span.set_attribute("relayq.outcome", outcome)
    span.end()
