"""Provider implementations for the postal code directory and weather backends."""

from cep_weather.providers.base import (
    DirectoryProvider,
    Found,
    LocationResult,
    NotFound,
    TransportError,
    WeatherProvider,
)
from cep_weather.providers.viacep import ViaCepProvider
from cep_weather.providers.weatherapi import WeatherApiProvider

__all__ = [
    "DirectoryProvider",
    "Found",
    "LocationResult",
    "NotFound",
    "TransportError",
    "WeatherProvider",
    "ViaCepProvider",
    "WeatherApiProvider",
]
