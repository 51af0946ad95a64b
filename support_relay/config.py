from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./support_relay.db"
    debug: bool = False
    log_level: str = "INFO"

    cors_allow_origins: str = "*"

    # Bot silence window after an unmatched message
    bot_silence_minutes: int = 30
    max_attachment_bytes: int = 5 * 1024 * 1024

    # memory | redis
    mute_store_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout_seconds: float = 0.3
    mute_key_prefix: str = "support_relay:mute"

    alert_webhook_url: Optional[str] = None

    admin_room: str = "admin"

    class Config:
        env_file = ".env"
        extra = "ignore"

    def cors_origins(self) -> list[str]:
        origins = [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]
        return origins or ["*"]


settings = Settings()
