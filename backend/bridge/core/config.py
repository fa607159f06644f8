from __future__ import annotations

from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

REQUIRED_ENV_VARS = (
    "WALLET_KEY",
    "ENCRYPTION_KEY",
    "XMTP_ENV",
    "INTENTKIT_API_URL",
    "INTENTKIT_API_KEY",
)


class Settings(BaseSettings):
    """Bridge settings loaded from environment variables."""

    intentkit_api_url: str = Field(default="", alias="INTENTKIT_API_URL")
    intentkit_api_key: str = Field(default="", alias="INTENTKIT_API_KEY")
    wallet_key: str = Field(default="", alias="WALLET_KEY")
    encryption_key: str = Field(default="", alias="ENCRYPTION_KEY")
    xmtp_env: str = Field(default="dev", alias="XMTP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    http_timeout_sec: float = Field(default=30, alias="HTTP_TIMEOUT_SEC")
    stream_timeout_sec: float = Field(default=30, alias="STREAM_TIMEOUT_SEC")
    stream_max_retries: int = Field(default=6, alias="STREAM_MAX_RETRIES")
    stream_retry_delay_sec: float = Field(default=10, alias="STREAM_RETRY_DELAY_SEC")
    discovery_enabled: bool = Field(default=True, alias="DISCOVERY_ENABLED")
    discovery_interval_sec: float = Field(default=15, alias="DISCOVERY_INTERVAL_SEC")
    greeting_text: str = Field(default="hello", alias="GREETING_TEXT")
    state_persistence: str = Field(default="off", alias="STATE_PERSISTENCE")
    db_url: str = Field(default="sqlite+aiosqlite:///./.data/bridge.db", alias="DB_URL")
    transport_factory: str = Field(
        default="bridge.transport.memory:loopback_strategies", alias="TRANSPORT_FACTORY"
    )
    admin_enabled: bool = Field(default=True, alias="ADMIN_ENABLED")
    admin_host: str = Field(default="127.0.0.1", alias="ADMIN_HOST")
    admin_port: int = Field(default=8000, alias="ADMIN_PORT")

    model_config = SettingsConfigDict(env_file=(".env", "backend/.env"), extra="ignore")

    def missing_required(self) -> List[str]:
        """Return names of required variables that are unset or blank."""

        values = {
            "WALLET_KEY": self.wallet_key,
            "ENCRYPTION_KEY": self.encryption_key,
            "XMTP_ENV": self.xmtp_env,
            "INTENTKIT_API_URL": self.intentkit_api_url,
            "INTENTKIT_API_KEY": self.intentkit_api_key,
        }
        return [name for name in REQUIRED_ENV_VARS if not (values[name] or "").strip()]

    @property
    def persistence_enabled(self) -> bool:
        return self.state_persistence.strip().lower() == "sqlite"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached bridge settings."""

    return Settings()
