"""Data models for the CEP gateway and lookup services."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator, model_validator


class PostalCodeRequest(BaseModel):
    """Inbound request body, `{"cep": "<8 digits>"}`."""

    model_config = ConfigDict(populate_by_name=True)

    code: StrictStr = Field(default="", alias="cep", description="Brazilian postal code (CEP)")

    @model_validator(mode="before")
    @classmethod
    def _match_key_case_insensitively(cls, data: Any) -> Any:
        # An exact "cep" key wins; otherwise "CEP", "Cep", ... are accepted.
        if isinstance(data, dict) and "cep" not in data:
            for key in data:
                if isinstance(key, str) and key.lower() == "cep":
                    return {**data, "cep": data[key]}
        return data

    @field_validator("code", mode="before")
    @classmethod
    def _null_is_empty(cls, value: Any) -> Any:
        # null leaves the code empty, so it fails format validation rather than decoding.
        return "" if value is None else value


class DirectoryRecord(BaseModel):
    """Address record returned by the ViaCEP directory."""

    cep: str = Field(default="", description="Formatted postal code")
    logradouro: str = Field(default="", description="Street")
    complemento: str = Field(default="", description="Address complement")
    bairro: str = Field(default="", description="Neighbourhood")
    localidade: str = Field(default="", description="City name")
    uf: str = Field(default="", description="State abbreviation")
    erro: bool = Field(default=False, description="Set when the postal code does not exist")

    @property
    def found(self) -> bool:
        return not self.erro

    @property
    def city(self) -> str:
        return self.localidade


class CurrentConditions(BaseModel):
    temp_c: float = Field(..., description="Current temperature in Celsius")


class WeatherApiResponse(BaseModel):
    """Subset of the WeatherAPI `current.json` payload."""

    current: CurrentConditions


class TemperatureReading(BaseModel):
    celsius: float


class WeatherResult(BaseModel):
    """Aggregated lookup response."""

    model_config = ConfigDict(populate_by_name=True)

    city: str = Field(..., description="Resolved city name")
    temp_c: float = Field(..., alias="temp_C", description="Temperature in Celsius")
    temp_f: float = Field(..., alias="temp_F", description="Temperature in Fahrenheit")
    temp_k: float = Field(..., alias="temp_K", description="Temperature in Kelvin")


class ErrorEnvelope(BaseModel):
    """The only error payload shape returned to callers."""

    message: str
