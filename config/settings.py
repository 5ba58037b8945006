"""Centralized configuration using Pydantic Settings."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from chat.models import UserIdentity

load_dotenv()

# Engine.io transports understood by the socket.io server
VALID_TRANSPORTS = ("websocket", "polling")


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    # ==================== Real-time Endpoint ====================
    server_url: str = Field(
        default="http://localhost:3000", validation_alias="CHAT_SERVER_URL"
    )
    # Comma separated, e.g. "websocket" or "websocket,polling"
    socket_transports: str = Field(
        default="websocket", validation_alias="SOCKET_TRANSPORTS"
    )

    # ==================== Reconnection ====================
    reconnection: bool = Field(default=True, validation_alias="SOCKET_RECONNECTION")
    # 0 means retry forever
    reconnection_attempts: int = Field(
        default=0, validation_alias="SOCKET_RECONNECTION_ATTEMPTS"
    )
    reconnection_delay: float = Field(
        default=1.0, validation_alias="SOCKET_RECONNECTION_DELAY"
    )

    # ==================== Request / Acknowledgement ====================
    ack_timeout: float = Field(default=10.0, validation_alias="ACK_TIMEOUT")

    # ==================== User Search ====================
    api_base_url: str = Field(
        default="http://localhost:3000", validation_alias="API_BASE_URL"
    )
    search_debounce: float = Field(default=0.5, validation_alias="SEARCH_DEBOUNCE")
    http_timeout: float = Field(default=10.0, validation_alias="HTTP_TIMEOUT")

    # ==================== Sync Behaviour ====================
    history_dedupe: bool = Field(default=False, validation_alias="HISTORY_DEDUPE")
    notifications_enabled: bool = Field(
        default=True, validation_alias="NOTIFICATIONS_ENABLED"
    )

    # ==================== Identity (from the login flow) ====================
    user_id: str = Field(default="", validation_alias="CHAT_USER_ID")
    user_display_name: str = Field(default="", validation_alias="CHAT_USER_NAME")
    user_avatar_url: str = Field(default="", validation_alias="CHAT_USER_AVATAR")

    # ==================== Logging ====================
    log_file: str = Field(default="client.log", validation_alias="LOG_FILE")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    @field_validator("socket_transports")
    @classmethod
    def validate_transports(cls, v: str) -> str:
        parts = [p.strip() for p in v.split(",") if p.strip()]
        if not parts:
            return "websocket"
        invalid = [p for p in parts if p not in VALID_TRANSPORTS]
        if invalid:
            raise ValueError(
                f"Invalid transport(s): {', '.join(invalid)}. "
                f"Supported: {', '.join(VALID_TRANSPORTS)}"
            )
        return ",".join(parts)

    @field_validator(
        "ack_timeout", "reconnection_delay", "search_debounce", "http_timeout"
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"must be positive, got {v!r}")
        return v

    @field_validator("reconnection_attempts")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"must not be negative, got {v!r}")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return (v or "INFO").strip().upper()

    @property
    def transports(self) -> list[str]:
        """Transport list in the form the socket.io client expects."""
        return self.socket_transports.split(",")

    def identity(self) -> UserIdentity:
        """Build the local user's identity as supplied by the login flow."""
        if not self.user_id:
            raise ValueError("CHAT_USER_ID is required to start a chat session")
        return UserIdentity(
            id=self.user_id,
            display_name=self.user_display_name,
            avatar_ref=self.user_avatar_url,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
