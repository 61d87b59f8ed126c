"""Shared fixtures: in-memory span capture and mocked upstream HTTP services."""

import json
from typing import Callable, Dict, List, Optional

import httpx
import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from cep_weather.configuration import GatewaySettings, LookupSettings
from cep_weather.observability import Telemetry, setup_telemetry

VIACEP_BASE_URL = "http://viacep.test/ws"
WEATHER_BASE_URL = "http://weather.test/v1/current.json"
LOOKUP_URL = "http://lookup.test"

Handler = Callable[[httpx.Request], httpx.Response]


def viacep_payload(city: str = "São Paulo", **overrides) -> Dict:
    payload = {
        "cep": "01001-000",
        "logradouro": "Praça da Sé",
        "complemento": "lado ímpar",
        "bairro": "Sé",
        "localidade": city,
        "uf": "SP",
        "ibge": "3550308",
    }
    payload.update(overrides)
    return payload


def weather_payload(temp_c: float = 25.0) -> Dict:
    return {
        "location": {"name": "Sao Paulo", "country": "Brazil"},
        "current": {"temp_c": temp_c, "temp_f": temp_c * 1.8 + 32, "condition": {"text": "Sunny"}},
    }


def json_reply(status_code: int, payload) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(payload).encode(), headers={"Content-Type": "application/json"})


class UpstreamRecorder:
    """Routes mocked requests to per-host handlers and records every request seen."""

    def __init__(self, handlers: Dict[str, Handler]):
        self.handlers = handlers
        self.requests: List[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.handlers[request.url.host](request)
        if hasattr(response, "__await__"):
            response = await response
        return response

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    def hosts(self) -> List[str]:
        return [r.url.host for r in self.requests]


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture
def telemetry(span_exporter) -> Telemetry:
    return setup_telemetry("cep-test", exporter=span_exporter)


@pytest.fixture
def lookup_settings() -> LookupSettings:
    return LookupSettings(
        weather_api_key="test-key",
        viacep_base_url=VIACEP_BASE_URL,
        weather_api_base_url=WEATHER_BASE_URL,
        upstream_timeout=0.5,
    )


@pytest.fixture
def gateway_settings() -> GatewaySettings:
    return GatewaySettings(lookup_url=LOOKUP_URL, forward_timeout=0.5)


def finished_span(exporter: InMemorySpanExporter, name: str, service: Optional[str] = None):
    spans = [
        s for s in exporter.get_finished_spans()
        if s.name == name and (service is None or s.resource.attributes.get("service.name") == service)
    ]
    assert len(spans) == 1, f"expected one {name!r} span, got {len(spans)}"
    return spans[0]


def traceparent_for(span_context) -> str:
    """Expected W3C traceparent for a span context, flags taken from the span itself."""
    return "00-{}-{}-{:02x}".format(
        trace.format_trace_id(span_context.trace_id),
        trace.format_span_id(span_context.span_id),
        span_context.trace_flags,
    )
