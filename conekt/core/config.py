# conekt/core/config.py
import logging
import os
from pathlib import Path
from typing import Optional

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
    env_path = Path(__file__).parent.parent.parent / ".env"
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: str = Field(default="development", description="Deployment environment name")

    # The remote relational store (Supabase Postgres in production)
    database_url: str = Field(
        default="sqlite:///./conekt.db",
        description="SQLAlchemy URL of the message store",
    )

    # Live updates
    broadcast_url: str = Field(
        default="redis://localhost:6379",
        description="Broadcaster backend URL (redis://, memory://)",
    )
    realtime_reconnect_delay: float = Field(
        default=1.0, description="Initial delay in seconds before resubscribing"
    )
    realtime_max_reconnect_delay: float = Field(
        default=30.0, description="Upper bound for resubscribe backoff in seconds"
    )

    # Auth provider tokens (Supabase-style HS256 JWT)
    secret_key: SecretStr = Field(
        default=SecretStr("change-me-in-production"),
        description="Shared secret used to verify access tokens",
    )
    algorithm: str = "HS256"
    token_audience: Optional[str] = Field(
        default="authenticated", description="Expected 'aud' claim; None disables the check"
    )
    access_token_expire_minutes: int = Field(
        default=60, description="Lifetime of tokens minted by create_access_token"
    )

    # Messaging
    conversation_id_prefix: str = Field(default="conv_", description="Canonical id prefix")
    conversation_id_separator: str = Field(
        default="_", description="Separator between the two participant ids"
    )
    message_max_length: int = Field(default=1000, description="Maximum message body length")
    mark_read_max_attempts: int = Field(
        default=2, ge=1, description="Attempts per message when draining unread messages"
    )

    slow_operation_threshold: float = Field(
        default=1.0, description="Service operations slower than this (seconds) are logged"
    )

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("conversation_id_prefix", "conversation_id_separator")
    @classmethod
    def _not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("conversation id prefix and separator must be non-empty")
        return value


settings = Settings()
