"""
Application settings loaded from environment variables (prefix ``PERCIFY_``).
"""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_MAX_STEPS = 10


class Settings(BaseSettings):
    """Runtime configuration for the avatar agent service"""

    model_config = SettingsConfigDict(
        env_prefix="PERCIFY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    service_name: str = "percify-avatar-agent"

    # Inference
    model_provider: str = "openai"
    model_name: str = "gpt-4o-mini"
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1024, ge=1)
    max_steps: int = Field(default=DEFAULT_MAX_STEPS, ge=1)
    inference_timeout: float = Field(default=60.0, gt=0)

    # Tools
    tool_timeout: float = Field(default=30.0, gt=0)
    docs_base_url: str = "https://docs.percify.io"

    # Sessions
    session_idle_timeout: float = Field(default=1800.0, gt=0)
    session_sweep_interval: float = Field(default=60.0, gt=0)

    # Tracing
    langfuse_enabled: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return str(v).upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return v


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the application settings singleton"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset the settings singleton (useful for testing)"""
    global _settings
    _settings = None
