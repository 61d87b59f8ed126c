"""
Lookup service: resolves a postal code to a city and its current temperature.

Request lifecycle:
    Received -> BodyDecoded -> Validated -> LocationResolved -> TemperatureFetched -> Responded

Every transition except the last can fail; the failing transition alone
decides the status code and message (see cep_weather.errors).
"""

import contextlib
import logging
from typing import Optional

import httpx
import uvicorn
from opentelemetry.trace import SpanKind
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from cep_weather.configuration import LookupSettings, configure_logging
from cep_weather.conversions import build_weather_result, parse_postal_code_request
from cep_weather.errors import NotFoundError, ServiceError, UpstreamError
from cep_weather.observability import Telemetry, current_trace_id, mark_span_error, setup_telemetry
from cep_weather.providers import (
    DirectoryProvider,
    NotFound,
    TransportError,
    ViaCepProvider,
    WeatherApiProvider,
    WeatherProvider,
)
from cep_weather.responses import (
    ClientDisconnected,
    error_response,
    health,
    http_exception_handler,
    json_response,
    run_until_disconnected,
)
from cep_weather.schemas import WeatherResult

logger = logging.getLogger(__name__)

SERVICE_NAME = "cep-lookup"


class LookupHandler:
    """
    Handles `POST /weather`.

    Attributes:
        telemetry (Telemetry): Tracer and trace-context propagator.
        directory (DirectoryProvider): Postal code to city resolution.
        weather (WeatherProvider): Current temperature per city.
    """

    def __init__(self, telemetry: Telemetry, directory: DirectoryProvider, weather: WeatherProvider):
        self.telemetry = telemetry
        self.directory = directory
        self.weather = weather

    async def handle_weather(self, request: Request) -> Response:
        # No valid traceparent means a fresh root span rather than a failure.
        parent = self.telemetry.extract(request.headers)
        with self.telemetry.start_span("handle-weather-request", kind=SpanKind.SERVER, parent=parent) as span:
            body = await request.body()
            try:
                cep_request = parse_postal_code_request(body)
                span.set_attribute("cep", cep_request.code)
                result = await run_until_disconnected(request, self.resolve(cep_request.code))
            except ServiceError as e:
                if isinstance(e, UpstreamError):
                    logger.error("Error resolving weather [trace %s]: %s", current_trace_id(), e.detail)
                else:
                    logger.info("Request failed with %s: %s", e.status_code, e.detail)
                mark_span_error(span, e)
                return error_response(e)
            except ClientDisconnected as e:
                mark_span_error(span, e)
                return error_response(UpstreamError())

            logger.info("Resolved %s to %s at %.1fC", cep_request.code, result.city, result.temp_c)
            return json_response(result)

    async def resolve(self, code: str) -> WeatherResult:
        """Run the two upstream calls in order and convert the temperature."""
        city = await self.fetch_location(code)
        celsius = await self.fetch_temperature(city)
        return build_weather_result(city, celsius)

    async def fetch_location(self, code: str) -> str:
        """
        Raises:
            NotFoundError: the directory has no record for `code`
            UpstreamError: the directory call failed
        """
        with self.telemetry.start_span("fetch-location-viacep", kind=SpanKind.CLIENT):
            result = await self.directory.lookup(code)
            if isinstance(result, NotFound):
                raise NotFoundError(f"directory has no record for {code}")
            if isinstance(result, TransportError):
                raise UpstreamError(result.detail)
            return result.city

    async def fetch_temperature(self, city: str) -> float:
        with self.telemetry.start_span("fetch-temperature-weatherapi", kind=SpanKind.CLIENT) as span:
            span.set_attribute("city", city)
            reading = await self.weather.current_temperature(city)
            return reading.celsius


def create_lookup_app(
    settings: Optional[LookupSettings] = None,
    telemetry: Optional[Telemetry] = None,
    directory: Optional[DirectoryProvider] = None,
    weather: Optional[WeatherProvider] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Starlette:
    """
    Build the lookup Starlette application.

    Providers default to ViaCEP and WeatherAPI sharing one httpx client. A
    client passed in is owned by the caller; otherwise one is created here
    and closed when the app shuts down.
    """
    settings = settings or LookupSettings()
    telemetry = telemetry or setup_telemetry(SERVICE_NAME)
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=settings.upstream_timeout)
    directory = directory or ViaCepProvider(client, settings.viacep_base_url, settings.upstream_timeout)
    weather = weather or WeatherApiProvider(
        client,
        settings.weather_api_base_url,
        settings.weather_api_key,
        settings.upstream_timeout,
    )
    handler = LookupHandler(telemetry, directory, weather)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        if not settings.weather_api_key:
            logger.warning("Please configure the WEATHER_API_KEY environment variable")
        yield
        if owns_client:
            await client.aclose()

    return Starlette(
        routes=[
            Route("/weather", handler.handle_weather, methods=["POST"]),
            Route("/health", health, methods=["GET"]),
        ],
        exception_handlers={HTTPException: http_exception_handler},
        lifespan=lifespan,
    )


def run():
    """
    Runs the lookup service.
    """
    settings = LookupSettings()
    configure_logging(settings.log_level)
    telemetry = setup_telemetry(SERVICE_NAME)
    app = create_lookup_app(settings, telemetry)
    logger.info("Lookup service starting on port %s", settings.port)
    try:
        uvicorn.run(app, host=settings.host, port=settings.port)
    finally:
        telemetry.shutdown()


if __name__ == "__main__":
    run()
