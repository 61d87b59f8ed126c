"""Tests for the lookup service HTTP surface."""

import asyncio

import pytest
from opentelemetry import trace
from starlette.testclient import TestClient

from cep_weather.lookup import create_lookup_app
from cep_weather.providers import DirectoryProvider, NotFound

from conftest import UpstreamRecorder, finished_span, json_reply, viacep_payload, weather_payload

TRACE_ID = "4bf92f3577b34da6a3ce929d0e0e4736"
PARENT_SPAN_ID = "00f067aa0ba902b7"


def upstreams(directory=None, weather=None) -> UpstreamRecorder:
    return UpstreamRecorder({
        "viacep.test": directory or (lambda r: json_reply(200, viacep_payload("São Paulo"))),
        "weather.test": weather or (lambda r: json_reply(200, weather_payload(25.0))),
    })


@pytest.fixture
def make_client(lookup_settings, telemetry):
    def _make(recorder: UpstreamRecorder, **kwargs) -> TestClient:
        app = create_lookup_app(lookup_settings, telemetry, client=recorder.client(), **kwargs)
        return TestClient(app)
    return _make


class TestLookupPipeline:
    """Test each transition of the lookup request pipeline."""

    def test_success(self, make_client):
        """Test the aggregated 200 response and the directory-then-weather order."""
        recorder = upstreams()
        resp = make_client(recorder).post("/weather", json={"cep": "01001000"})

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/json"
        assert resp.json() == {"city": "São Paulo", "temp_C": 25.0, "temp_F": 77.0, "temp_K": 298.0}
        # directory strictly before weather
        assert recorder.hosts() == ["viacep.test", "weather.test"]

    def test_malformed_body(self, make_client):
        """Test that an undecodable body gets 400 with no upstream calls."""
        recorder = upstreams()
        resp = make_client(recorder).post("/weather", content=b"{not json", headers={"Content-Type": "application/json"})

        assert resp.status_code == 400
        assert resp.json() == {"message": "invalid request body"}
        assert recorder.requests == []

    @pytest.mark.parametrize("cep", ["123", "0100100a", "", "01001-000", None])
    def test_invalid_zipcode(self, make_client, cep):
        """Test that badly formatted or null codes get 422 with no upstream calls."""
        recorder = upstreams()
        resp = make_client(recorder).post("/weather", json={"cep": cep})

        assert resp.status_code == 422
        assert resp.json() == {"message": "invalid zipcode"}
        assert recorder.requests == []

    def test_uppercase_key(self, make_client):
        """Test that a `CEP` key resolves like `cep`."""
        resp = make_client(upstreams()).post("/weather", json={"CEP": "01001000"})

        assert resp.status_code == 200
        assert resp.json()["city"] == "São Paulo"

    def test_unknown_zipcode(self, make_client):
        """Test that ViaCEP's erro flag becomes 404 and skips the weather call."""
        recorder = upstreams(directory=lambda r: json_reply(200, {"erro": True}))
        resp = make_client(recorder).post("/weather", json={"cep": "99999999"})

        assert resp.status_code == 404
        assert resp.json() == {"message": "can not find zipcode"}
        assert recorder.hosts() == ["viacep.test"]

    def test_directory_failure(self, make_client):
        """Test that a failing directory gives 500."""
        recorder = upstreams(directory=lambda r: json_reply(500, {"error": "boom"}))
        resp = make_client(recorder).post("/weather", json={"cep": "01001000"})

        assert resp.status_code == 500
        assert resp.json() == {"message": "internal server error"}
        assert recorder.hosts() == ["viacep.test"]

    def test_weather_timeout(self, make_client):
        """Test that a slow weather provider gives 500."""
        async def slow_weather(request):
            await asyncio.sleep(5)
            return json_reply(200, weather_payload())

        recorder = upstreams(weather=slow_weather)
        resp = make_client(recorder).post("/weather", json={"cep": "01001000"})

        assert resp.status_code == 500
        assert resp.json() == {"message": "internal server error"}

    def test_weather_error_detail_is_not_leaked(self, make_client):
        """Test that upstream error text never reaches the caller."""
        recorder = upstreams(weather=lambda r: json_reply(403, {"error": {"message": "API key has been disabled."}}))
        resp = make_client(recorder).post("/weather", json={"cep": "01001000"})

        assert resp.status_code == 500
        assert resp.json() == {"message": "internal server error"}

    def test_missing_weather_key(self, lookup_settings, telemetry):
        """Test that a missing API key is a 500 at call time."""
        recorder = upstreams()
        settings = lookup_settings.model_copy(update={"weather_api_key": ""})
        app = create_lookup_app(settings, telemetry, client=recorder.client())
        resp = TestClient(app).post("/weather", json={"cep": "01001000"})

        assert resp.status_code == 500
        assert resp.json() == {"message": "internal server error"}
        assert recorder.hosts() == ["viacep.test"]

    def test_custom_directory_provider(self, make_client):
        """Test that an injected DirectoryProvider is used."""
        class EmptyDirectory(DirectoryProvider):
            async def lookup(self, code):
                return NotFound()

        resp = make_client(upstreams(), directory=EmptyDirectory()).post("/weather", json={"cep": "01001000"})
        assert resp.status_code == 404


class TestLookupRouting:
    """Test routing fallbacks and the health endpoint."""

    @pytest.mark.parametrize("method", ["GET", "PUT", "DELETE"])
    def test_only_post_is_allowed(self, make_client, method):
        """Test that other methods get 405 with the error envelope and Allow header."""
        resp = make_client(upstreams()).request(method, "/weather")

        assert resp.status_code == 405
        assert resp.json() == {"message": "method not allowed"}
        assert "POST" in resp.headers["allow"]

    def test_unknown_path(self, make_client):
        """Test that unknown paths get 404 with the error envelope."""
        resp = make_client(upstreams()).post("/nope", json={"cep": "01001000"})
        assert resp.status_code == 404
        assert resp.json() == {"message": "not found"}

    def test_health(self, make_client):
        """Test the health endpoint."""
        resp = make_client(upstreams()).get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestLookupTracing:
    """Test trace continuation from inbound headers."""

    def test_continues_inbound_trace(self, make_client, span_exporter):
        """Test that the handler and fetch spans join the caller's trace."""
        headers = {"traceparent": f"00-{TRACE_ID}-{PARENT_SPAN_ID}-01"}
        resp = make_client(upstreams()).post("/weather", json={"cep": "01001000"}, headers=headers)
        assert resp.status_code == 200

        root = finished_span(span_exporter, "handle-weather-request")
        assert trace.format_trace_id(root.context.trace_id) == TRACE_ID
        assert trace.format_span_id(root.parent.span_id) == PARENT_SPAN_ID

        for name in ("fetch-location-viacep", "fetch-temperature-weatherapi"):
            child = finished_span(span_exporter, name)
            assert child.context.trace_id == root.context.trace_id
            assert child.parent.span_id == root.context.span_id

    @pytest.mark.parametrize("headers", [{}, {"traceparent": "garbage"}])
    def test_starts_fresh_trace_without_valid_header(self, make_client, span_exporter, headers):
        """Test that a missing or invalid traceparent starts a new root span."""
        resp = make_client(upstreams()).post("/weather", json={"cep": "01001000"}, headers=headers)
        assert resp.status_code == 200

        root = finished_span(span_exporter, "handle-weather-request")
        assert root.parent is None
        assert trace.format_trace_id(root.context.trace_id) != TRACE_ID

    def test_not_found_marks_span_error(self, make_client, span_exporter):
        """Test that a not-found lookup marks the directory span as failed."""
        recorder = upstreams(directory=lambda r: json_reply(200, {"erro": True}))
        make_client(recorder).post("/weather", json={"cep": "99999999"})

        span = finished_span(span_exporter, "fetch-location-viacep")
        assert span.status.status_code == trace.StatusCode.ERROR
