import re

from pydantic import ValidationError as PydanticValidationError

from cep_weather.errors import ClientError, ValidationError
from cep_weather.schemas import PostalCodeRequest, WeatherResult

CEP_PATTERN = re.compile(r"[0-9]{8}")

FAHRENHEIT_FACTOR = 1.8
FAHRENHEIT_OFFSET = 32
# Kept at 273 rather than 273.15 for compatibility with existing callers.
KELVIN_OFFSET = 273


def is_valid_cep(code: str) -> bool:
    """Return True when `code` is exactly 8 ASCII decimal digits."""
    return isinstance(code, str) and CEP_PATTERN.fullmatch(code) is not None


def celsius_to_fahrenheit(celsius: float) -> float:
    return celsius * FAHRENHEIT_FACTOR + FAHRENHEIT_OFFSET


def celsius_to_kelvin(celsius: float) -> float:
    return celsius + KELVIN_OFFSET


def build_weather_result(city: str, celsius: float) -> WeatherResult:
    return WeatherResult(
        city=city,
        temp_c=celsius,
        temp_f=celsius_to_fahrenheit(celsius),
        temp_k=celsius_to_kelvin(celsius),
    )


def decode_postal_code_request(body: bytes) -> PostalCodeRequest:
    """
    Decode a raw request body into a PostalCodeRequest.

    Raises:
        ClientError: body is not a JSON object with a string `cep`
    """
    try:
        return PostalCodeRequest.model_validate_json(body or b"")
    except PydanticValidationError as e:
        raise ClientError(str(e)) from e


def parse_postal_code_request(body: bytes) -> PostalCodeRequest:
    """
    Decode and validate a request body.

    Raises:
        ClientError: body could not be decoded
        ValidationError: `cep` is not exactly 8 digits
    """
    request = decode_postal_code_request(body)
    if not is_valid_cep(request.code):
        raise ValidationError(f"rejected postal code {request.code!r}")
    return request
