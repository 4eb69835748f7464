"""Server settings."""

from typing import Literal

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from visionstruct.server.http_body import DEFAULT_MAX_BODY_BYTES


class Settings(BaseSettings):
    """VisionStruct server settings.

    All settings can be configured via environment variables with the prefix VISIONSTRUCT_.
    For example, VISIONSTRUCT_DEBUG=true will set debug=True. The API key and the port
    are also read from the unprefixed API_KEY and PORT variables.
    """

    model_config = SettingsConfigDict(
        env_prefix="VISIONSTRUCT_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    # Server settings
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # HTTP settings
    host: str = "127.0.0.1"
    port: int = Field(default=3000, validation_alias=AliasChoices("VISIONSTRUCT_PORT", "PORT"))
    sse_path: str = "/sse"
    message_path: str = "/messages/"
    max_body_bytes: int | None = DEFAULT_MAX_BODY_BYTES

    # Session settings
    session_queue_size: int = 16
    """Requests a session may have waiting behind the one in flight."""

    # Inference backend settings
    api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("VISIONSTRUCT_API_KEY", "API_KEY", "GEMINI_API_KEY"),
    )
    """Credential for the vision backend. Missing is allowed; analysis calls fail until it is set."""

    model: str = "gemini-3-pro-preview"
    backend_timeout: float = 120.0

    @property
    def has_api_key(self) -> bool:
        """Whether a non-empty backend credential is configured."""
        return self.api_key is not None and bool(self.api_key.get_secret_value())
