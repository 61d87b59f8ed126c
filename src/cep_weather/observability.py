"""
OpenTelemetry observability setup for the CEP services.

Key Features:
- Explicit Telemetry object handed to each app (no global tracer provider)
- OTLP/HTTP span export with service resource attributes
- W3C Trace Context propagation across the gateway -> lookup hop
"""

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, Mapping, MutableMapping, Optional

from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor, SpanExporter
from opentelemetry.trace import Span, SpanKind, Status, StatusCode
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from cep_weather import __version__
from cep_weather.configuration import TelemetrySettings

logger = logging.getLogger(__name__)

TRACER_NAME = "cep_weather"


def _get_otlp_exporter(endpoint: str) -> SpanExporter:
    """Get HTTP OTLP exporter."""
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    if not endpoint.endswith("/v1/traces"):
        endpoint = endpoint.rstrip("/") + "/v1/traces"
    return OTLPSpanExporter(endpoint=endpoint)


class Telemetry:
    """
    Tracer, propagator and provider lifecycle for one service process.

    Built once at process start by `setup_telemetry` and passed into the app
    factory; `shutdown` flushes pending spans at process stop.
    """

    def __init__(self, tracer_provider: TracerProvider):
        self.tracer_provider = tracer_provider
        self.tracer = tracer_provider.get_tracer(TRACER_NAME, __version__)
        self.propagator = TraceContextTextMapPropagator()

    def inject(self, headers: MutableMapping[str, str], ctx: Optional[Context] = None) -> None:
        """Write the `traceparent` header for the current (or given) context."""
        self.propagator.inject(headers, context=ctx)

    def extract(self, headers: Mapping[str, str]) -> Context:
        """Read an inbound `traceparent`; an absent or invalid header yields an empty context."""
        return self.propagator.extract(headers)

    @contextmanager
    def start_span(
        self,
        name: str,
        kind: SpanKind = SpanKind.INTERNAL,
        parent: Optional[Context] = None,
        attributes: Optional[Dict[str, str]] = None,
    ) -> Iterator[Span]:
        """
        Start a span as current, recording unhandled exceptions as span errors.

        Args:
            name: Span name
            kind: Span kind (SERVER for inbound handlers, CLIENT for outbound calls)
            parent: Explicit parent context, e.g. one extracted from request headers
            attributes: Initial span attributes
        """
        with self.tracer.start_as_current_span(
            name,
            context=parent,
            kind=kind,
            attributes=attributes,
            record_exception=False,
            set_status_on_exception=False,
        ) as span:
            try:
                yield span
            except Exception as e:
                mark_span_error(span, e)
                raise

    def shutdown(self) -> None:
        logger.info("Shutting down tracer provider")
        self.tracer_provider.shutdown()


def mark_span_error(span: Span, error: BaseException) -> None:
    span.set_status(Status(StatusCode.ERROR, str(error)))
    span.record_exception(error)


def setup_telemetry(
    default_service_name: str,
    settings: Optional[TelemetrySettings] = None,
    exporter: Optional[SpanExporter] = None,
) -> Telemetry:
    """
    Set up OpenTelemetry tracing for a service.

    Call this ONCE at process start. Passing `exporter` wires it with a
    synchronous processor, which is what tests use to capture spans.
    """
    settings = settings or TelemetrySettings()
    service_name = settings.otel_service_name or default_service_name

    resource = Resource(attributes={
        SERVICE_NAME: service_name,
        SERVICE_VERSION: __version__,
    })
    tracer_provider = TracerProvider(resource=resource)

    if exporter is not None:
        tracer_provider.add_span_processor(SimpleSpanProcessor(exporter))
    elif settings.otel_sdk_disabled:
        logger.info("OTEL SDK disabled, spans for %s will not be exported", service_name)
    else:
        logger.info("Setting up OpenTelemetry observability")
        logger.info(f"  Service: {service_name}")
        logger.info(f"  OTLP Endpoint: {settings.otel_exporter_otlp_endpoint}")
        tracer_provider.add_span_processor(
            BatchSpanProcessor(_get_otlp_exporter(settings.otel_exporter_otlp_endpoint))
        )

    return Telemetry(tracer_provider)


def current_trace_id() -> str:
    """Hex trace id of the current span, or an empty string outside a trace."""
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return ""
    return trace.format_trace_id(span_context.trace_id)
