import logging
import sys

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TelemetrySettings(BaseSettings):
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318"
    otel_service_name: str = ""
    otel_sdk_disabled: bool = False


class GatewaySettings(BaseSettings):
    model_config = SettingsConfigDict(populate_by_name=True)

    # Base URL of the lookup service; "/weather" is appended on forward.
    lookup_url: str = Field(default="http://localhost:8081", validation_alias="SERVICE_B_URL")
    forward_timeout: float = 10.0
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"


class LookupSettings(BaseSettings):
    weather_api_key: str = ""
    viacep_base_url: str = "https://viacep.com.br/ws"
    weather_api_base_url: str = "https://api.weatherapi.com/v1/current.json"
    upstream_timeout: float = 5.0
    host: str = "0.0.0.0"
    port: int = 8081
    log_level: str = "INFO"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), stream=sys.stdout, format='%(levelname)s: %(message)s')
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
