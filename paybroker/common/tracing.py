"""OpenTelemetry wiring: inbound FastAPI spans and outbound gateway spans."""

from contextlib import contextmanager
from typing import Iterator

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from paybroker.common.config import BrokerSettings


tracer = trace.get_tracer("paybroker")


def setup_tracing(config: BrokerSettings) -> None:
    """Register the tracer provider.

    Spans are only exported when an OTLP endpoint is configured; an empty
    `OTEL_EXPORTER_OTLP_ENDPOINT` keeps tracing in-process.
    """

    resource = Resource.create(
        {
            "service.name": config.service_name,
            "service.namespace": "payments",
            "paybroker.gateway.base_url": config.gateway_base_url,
        }
    )
    provider = TracerProvider(resource=resource)
    if config.otel_exporter_otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=config.otel_exporter_otlp_endpoint)))
    trace.set_tracer_provider(provider)


def instrument_app(app: FastAPI) -> None:
    """Trace API requests; health checks and scrapes are left out."""

    FastAPIInstrumentor.instrument_app(app, excluded_urls="/health,/metrics")


@contextmanager
def gateway_span(operation: str, path: str) -> Iterator[trace.Span]:
    """Client span around one outbound gateway call."""

    with tracer.start_as_current_span(f"gateway.{operation}", kind=trace.SpanKind.CLIENT) as span:
        span.set_attribute("paybroker.gateway.operation", operation)
        span.set_attribute("url.path", path)
        yield span
