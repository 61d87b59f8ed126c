"""ViaCEP postal code directory."""

import asyncio
import logging

import httpx
from pydantic import ValidationError

from cep_weather.providers.base import DirectoryProvider, Found, LocationResult, NotFound, TransportError
from cep_weather.schemas import DirectoryRecord

logger = logging.getLogger(__name__)


class ViaCepProvider(DirectoryProvider):
    """Resolves postal codes with `GET {base_url}/{cep}/json/`."""

    def __init__(self, client: httpx.AsyncClient, base_url: str, timeout: float = 5.0):
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def lookup(self, code: str) -> LocationResult:
        url = f"{self._base_url}/{code}/json/"
        logger.debug("Requesting ViaCEP %s", url)
        try:
            resp = await asyncio.wait_for(self._client.get(url), timeout=self._timeout)
        except asyncio.TimeoutError:
            return TransportError(detail=f"ViaCEP timed out after {self._timeout}s")
        except httpx.HTTPError as e:
            return TransportError(detail=f"ViaCEP request failed: {e!r}")

        if resp.status_code != httpx.codes.OK:
            return TransportError(detail=f"ViaCEP returned status {resp.status_code}")

        try:
            record = DirectoryRecord.model_validate_json(resp.content)
        except ValidationError as e:
            return TransportError(detail=f"ViaCEP returned a malformed body: {e}")

        if not record.found:
            return NotFound()
        return Found(city=record.city)
