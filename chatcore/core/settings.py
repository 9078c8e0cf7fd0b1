from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional

class Settings(BaseSettings):
    env: str = "dev"
    database_url: str = "sqlite+aiosqlite:///./chatcore.db"
    redis_url: Optional[str] = None
    auto_create_schema: bool = True

    jwt_secret: str
    jwt_issuer: str = "chatcore-identity"
    access_token_minutes: int = 60

    admin_token: str

    cors_origins: str = "http://localhost:3000"
    log_level: str = "INFO"

    conversation_separator: str = "_"
    attachment_max_bytes: int = 1024 * 1024
    attachment_quality: int = 70
    attachment_scale_damping: float = 0.7

    rate_limit_send: str = "60/minute"
    rate_limit_health: str = "30/minute"

    write_retry_attempts: int = 2
    write_retry_backoff_seconds: float = 0.05

    metrics_enabled: bool = False

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

settings = Settings()
