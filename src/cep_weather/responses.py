"""JSON rendering, routing fallbacks and client-disconnect handling shared by both apps."""

import asyncio
import logging
from typing import Awaitable, TypeVar

from pydantic import BaseModel
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import Response

from cep_weather.errors import ServiceError
from cep_weather.schemas import ErrorEnvelope

logger = logging.getLogger(__name__)

T = TypeVar("T")

JSON_MEDIA_TYPE = "application/json"
DISCONNECT_POLL_INTERVAL = 0.1


class ClientDisconnected(Exception):
    """The caller went away before the response was ready."""


def json_response(model: BaseModel, status_code: int = 200) -> Response:
    return Response(
        content=model.model_dump_json(by_alias=True),
        status_code=status_code,
        media_type=JSON_MEDIA_TYPE,
    )


def error_response(error: ServiceError) -> Response:
    return json_response(ErrorEnvelope(message=error.message), error.status_code)


async def http_exception_handler(request: Request, exc: HTTPException) -> Response:
    """Render routing errors (unknown path, wrong method) with the error envelope."""
    message = {404: "not found", 405: "method not allowed"}.get(exc.status_code, str(exc.detail).lower())
    response = json_response(ErrorEnvelope(message=message), exc.status_code)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def health(request: Request) -> Response:
    return Response(content=b'{"status":"ok"}', media_type=JSON_MEDIA_TYPE)


async def _wait_for_disconnect(request: Request) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL_INTERVAL)


async def run_until_disconnected(request: Request, work: Awaitable[T]) -> T:
    """
    Await `work` while watching the caller's connection.

    The request body must already be consumed. If the caller disconnects
    first, `work` is cancelled (aborting any in-flight outbound call) and
    ClientDisconnected is raised.
    """
    work_task = asyncio.ensure_future(work)
    watcher = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        done, _ = await asyncio.wait({work_task, watcher}, return_when=asyncio.FIRST_COMPLETED)
        if work_task in done:
            return work_task.result()
        logger.info("Client disconnected from %s, cancelling in-flight work", request.url.path)
        work_task.cancel()
        try:
            await work_task
        except asyncio.CancelledError:
            pass
        raise ClientDisconnected(request.url.path)
    finally:
        watcher.cancel()
        if not work_task.done():
            work_task.cancel()
