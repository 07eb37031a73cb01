# backend/plantchat/core/config.py
import logging
import os
from pathlib import Path
from typing import List, Literal

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.info(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


if os.getenv("CI"):
    _DEFAULT_SECRET_KEY: SecretStr | object = SecretStr("ci-test-secret-key-not-for-production")
else:
    _DEFAULT_SECRET_KEY = ...


class Settings(BaseSettings):
    # Use a default secret key for CI/testing environments
    secret_key: SecretStr = Field(
        default=_DEFAULT_SECRET_KEY,
        description="Secret key for JWT tokens",
    )  # type: ignore[assignment]  # defaults to ellipsis outside CI
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 720  # 12 hours

    database_url: str = Field(
        default="sqlite:///./plantchat.db",
        description="SQLAlchemy URL of the conversation/message store",
    )
    database_echo: bool = False

    environment: Literal["development", "production"] = "development"

    # Comma-separated list, e.g. "http://localhost:3000,https://app.example.com"
    cors_allowed_origins: str = "http://localhost:3000,http://localhost:3001"

    # Live channel
    ws_heartbeat_interval: float = Field(
        default=25.0,
        description="Seconds between server heartbeat frames on a chat socket",
    )
    ws_max_message_size: int = Field(
        default=64 * 1024,
        description="Largest inbound WebSocket frame accepted, in bytes",
    )

    # Messages
    message_max_length: int = Field(default=5000, description="Maximum message length")
    messages_default_limit: int = 50
    messages_max_limit: int = 100

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,  # allows SECRET_KEY to match secret_key
        extra="ignore",
    )

    @field_validator("ws_heartbeat_interval")
    @classmethod
    def _positive_heartbeat(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("ws_heartbeat_interval must be positive")
        return value

    @field_validator("messages_max_limit")
    @classmethod
    def _positive_limit(cls, value: int) -> int:
        if value < 1:
            raise ValueError("messages_max_limit must be at least 1")
        return value

    @property
    def allowed_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_allowed_origins.split(",") if origin.strip()]


settings = Settings()
