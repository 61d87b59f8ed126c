"""WeatherAPI.com current conditions."""

import asyncio
import logging

import httpx
from pydantic import ValidationError

from cep_weather.errors import UpstreamError
from cep_weather.providers.base import WeatherProvider
from cep_weather.schemas import TemperatureReading, WeatherApiResponse

logger = logging.getLogger(__name__)


class WeatherApiProvider(WeatherProvider):
    """Fetches `current.temp_c` with `GET {base_url}?key=<key>&q=<city>&aqi=no`."""

    def __init__(self, client: httpx.AsyncClient, base_url: str, api_key: str, timeout: float = 5.0):
        self._client = client
        self._base_url = base_url
        self._api_key = api_key
        self._timeout = timeout

    async def current_temperature(self, city: str) -> TemperatureReading:
        if not self._api_key:
            raise UpstreamError("WEATHER_API_KEY not set")

        params = {"key": self._api_key, "q": city, "aqi": "no"}
        logger.debug("Requesting WeatherAPI with q=%s", city)
        try:
            resp = await asyncio.wait_for(self._client.get(self._base_url, params=params), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamError(f"WeatherAPI timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"WeatherAPI request failed: {e!r}") from e

        if resp.status_code != httpx.codes.OK:
            raise UpstreamError(f"WeatherAPI returned status {resp.status_code}")

        try:
            data = WeatherApiResponse.model_validate_json(resp.content)
        except ValidationError as e:
            raise UpstreamError(f"WeatherAPI returned a malformed body: {e}") from e

        return TemperatureReading(celsius=data.current.temp_c)
