"""Application configuration."""
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str

    # Agora (admission tokens)
    agora_app_id: Optional[str] = None
    agora_app_certificate: Optional[str] = None
    token_default_ttl_seconds: int = 3600
    token_max_ttl_seconds: int = 86400

    # Call signaling
    ringing_staleness_seconds: int = 120
    owner_poll_interval_seconds: float = 3.0
    ringing_sweep_interval_seconds: float = 30.0  # 0 disables the sweeper
    plate_candidate_limit: int = 3
    sse_heartbeat_seconds: float = 15.0

    # Media adapter factory, "package.module:factory"; inline adapter when unset
    media_adapter: Optional[str] = None

    # Server
    base_url: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()
