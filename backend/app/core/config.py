from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):

    app_name: str = "pairchat"
    log_level: str = "INFO"

    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db: str = "chat-app"

    # JWT
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7

    # realtime layer; disabled for HTTP-only deployments
    realtime_enabled: bool = True
    typing_timeout_seconds: float = 3.0

    # blob storage; without a bucket media payloads are stored inline
    blob_bucket: Optional[str] = None
    blob_prefix: str = "chat-media"
    blob_public_base_url: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
