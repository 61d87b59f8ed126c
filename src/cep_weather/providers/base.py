"""Abstract base classes for the directory and weather providers."""

from abc import ABC, abstractmethod
from typing import Literal, Union

from pydantic import BaseModel

from cep_weather.schemas import TemperatureReading


class Found(BaseModel):
    """The postal code resolved to a city."""

    kind: Literal["found"] = "found"
    city: str


class NotFound(BaseModel):
    """The directory answered, but has no record for the postal code."""

    kind: Literal["not_found"] = "not_found"


class TransportError(BaseModel):
    """The directory could not be reached or gave an unusable answer."""

    kind: Literal["transport_error"] = "transport_error"
    detail: str


LocationResult = Union[Found, NotFound, TransportError]


class DirectoryProvider(ABC):
    """
    Postal code directory interface.

    Implementations never raise for dependency failures; every outcome is
    reported as one of the LocationResult variants.
    """

    @abstractmethod
    async def lookup(self, code: str) -> LocationResult:
        """
        Resolve a postal code to a city.

        Args:
            code: Validated 8-digit postal code

        Returns:
            Found, NotFound or TransportError
        """
        pass


class WeatherProvider(ABC):
    """Current weather interface."""

    @abstractmethod
    async def current_temperature(self, city: str) -> TemperatureReading:
        """
        Fetch the current temperature for a city.

        Args:
            city: City name as resolved by the directory

        Returns:
            Current temperature reading

        Raises:
            UpstreamError: credential missing, transport failure, non-success
                status or malformed response
        """
        pass
