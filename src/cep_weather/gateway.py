"""
Gateway service: validates postal code requests and relays them to the lookup service.

The lookup service's status code and body are passed back verbatim; only
local validation failures and forwarding failures are answered here.
"""

import asyncio
import contextlib
import logging
from typing import Optional, Tuple

import httpx
import uvicorn
from opentelemetry.trace import SpanKind
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from cep_weather.configuration import GatewaySettings, configure_logging
from cep_weather.conversions import decode_postal_code_request, is_valid_cep
from cep_weather.errors import ServiceError, UpstreamError, ValidationError
from cep_weather.observability import Telemetry, current_trace_id, mark_span_error, setup_telemetry
from cep_weather.responses import (
    JSON_MEDIA_TYPE,
    ClientDisconnected,
    error_response,
    health,
    http_exception_handler,
    run_until_disconnected,
)
from cep_weather.schemas import PostalCodeRequest

logger = logging.getLogger(__name__)

SERVICE_NAME = "cep-gateway"


class GatewayHandler:
    """
    Handles `POST /cep`.

    Attributes:
        settings (GatewaySettings): Lookup URL and forwarding timeout.
        telemetry (Telemetry): Tracer and trace-context propagator.
        client (httpx.AsyncClient): Client used for the forward call.
    """

    def __init__(self, settings: GatewaySettings, telemetry: Telemetry, client: httpx.AsyncClient):
        self.settings = settings
        self.telemetry = telemetry
        self.client = client
        self.forward_url = settings.lookup_url.rstrip("/") + "/weather"

    async def handle_cep(self, request: Request) -> Response:
        parent = self.telemetry.extract(request.headers)
        with self.telemetry.start_span("handle-cep-request", kind=SpanKind.SERVER, parent=parent) as span:
            body = await request.body()
            try:
                cep_request = decode_postal_code_request(body)
                self._validate(cep_request)
                status_code, content = await run_until_disconnected(request, self._forward(cep_request))
            except ServiceError as e:
                if isinstance(e, UpstreamError):
                    logger.error("Error forwarding to lookup service [trace %s]: %s", current_trace_id(), e.detail)
                else:
                    logger.info("Rejected request: %s", e.detail)
                mark_span_error(span, e)
                return error_response(e)
            except ClientDisconnected as e:
                mark_span_error(span, e)
                return error_response(UpstreamError())

            span.set_attribute("http.response.status_code", status_code)
            return Response(content=content, status_code=status_code, media_type=JSON_MEDIA_TYPE)

    def _validate(self, cep_request: PostalCodeRequest) -> None:
        with self.telemetry.start_span("validate-cep"):
            if not is_valid_cep(cep_request.code):
                raise ValidationError(f"rejected postal code {cep_request.code!r}")

    async def _forward(self, cep_request: PostalCodeRequest) -> Tuple[int, bytes]:
        """
        POST the request to the lookup service with the current trace context.

        Returns:
            The downstream status code and raw body

        Raises:
            UpstreamError: timeout, connection failure or malformed downstream response
        """
        with self.telemetry.start_span(
            "forward-to-lookup",
            kind=SpanKind.CLIENT,
            attributes={"url.full": self.forward_url},
        ) as span:
            headers = {"Content-Type": JSON_MEDIA_TYPE}
            self.telemetry.inject(headers)
            try:
                resp = await asyncio.wait_for(
                    self.client.post(
                        self.forward_url,
                        content=cep_request.model_dump_json(by_alias=True),
                        headers=headers,
                    ),
                    timeout=self.settings.forward_timeout,
                )
            except asyncio.TimeoutError as e:
                raise UpstreamError(f"lookup service timed out after {self.settings.forward_timeout}s") from e
            except httpx.HTTPError as e:
                raise UpstreamError(f"lookup service request failed: {e!r}") from e

            span.set_attribute("http.response.status_code", resp.status_code)
            return resp.status_code, resp.content


def create_gateway_app(
    settings: Optional[GatewaySettings] = None,
    telemetry: Optional[Telemetry] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Starlette:
    """
    Build the gateway Starlette application.

    A client passed in is owned by the caller; otherwise one is created here
    and closed when the app shuts down.
    """
    settings = settings or GatewaySettings()
    telemetry = telemetry or setup_telemetry(SERVICE_NAME)
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=settings.forward_timeout)
    handler = GatewayHandler(settings, telemetry, client)

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info("Gateway forwarding to %s", handler.forward_url)
        yield
        if owns_client:
            await client.aclose()

    return Starlette(
        routes=[
            Route("/cep", handler.handle_cep, methods=["POST"]),
            Route("/health", health, methods=["GET"]),
        ],
        exception_handlers={HTTPException: http_exception_handler},
        lifespan=lifespan,
    )


def run():
    """
    Runs the gateway service.
    """
    settings = GatewaySettings()
    configure_logging(settings.log_level)
    telemetry = setup_telemetry(SERVICE_NAME)
    app = create_gateway_app(settings, telemetry)
    logger.info("Gateway starting on port %s", settings.port)
    try:
        uvicorn.run(app, host=settings.host, port=settings.port)
    finally:
        telemetry.shutdown()


if __name__ == "__main__":
    run()
