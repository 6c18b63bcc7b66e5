"""Configuration management for ariachat."""

from __future__ import annotations

from typing import Literal

from pydantic import Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from ariachat.errors import ConfigurationError

API_PREFIX = "/api/v1"


class AriaSettings(BaseSettings):
    """Client settings."""

    model_config = SettingsConfigDict(
        env_prefix="ARIA_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API Configuration
    api_host: str = Field(default="localhost", description="Aria Runtime host")
    api_port: int = Field(default=50052, description="Aria Runtime port")
    api_scheme: Literal["http", "https"] = Field(default="http", description="URL scheme")
    access_token: SecretStr | None = Field(default=None, description="Optional bearer token")

    # Streaming Configuration
    connect_timeout_seconds: float = Field(default=30.0, gt=0, description="Connect timeout")
    stream_timeout_seconds: float = Field(default=3600.0, gt=0, description="Timeout for one open stream")
    credential_timeout_seconds: float = Field(
        default=0.5, ge=0, description="How long to wait for an authorization header"
    )
    lenient_frames: bool = Field(default=False, description="Accept single-newline terminated records")

    # Turn Configuration
    fallback_enabled: bool = Field(default=True, description="Simulate a response when the backend is unreachable")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")

    @property
    def base_url(self) -> str:
        return f"{self.api_scheme}://{self.api_host}:{self.api_port}"

    @property
    def api_base_url(self) -> str:
        return f"{self.base_url}{API_PREFIX}"


def load_settings(**overrides: object) -> AriaSettings:
    """Load settings from the environment and apply explicit overrides.

    Args:
        **overrides: Field values that win over the environment; ``None`` values are ignored

    Returns:
        AriaSettings instance

    Raises:
        ConfigurationError: If the resulting settings do not validate
    """
    updates = {key: value for key, value in overrides.items() if value is not None}
    try:
        return AriaSettings(**updates)  # type: ignore[arg-type]
    except ValidationError as exc:
        raise ConfigurationError(str(exc)) from exc
