from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")
    database_echo: bool = Field(False, alias="DATABASE_ECHO")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(15, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Scheduling: a printing team works this many hours per day.
    working_hours_per_day: int = Field(20, alias="WORKING_HOURS_PER_DAY", ge=1, le=24)

    # Realtime: max pending change hints per subscriber before the oldest is dropped.
    notification_queue_size: int = Field(100, alias="NOTIFICATION_QUEUE_SIZE", ge=1)

    # Background job: SUBMITTED orders not confirmed within this many hours are auto-confirmed.
    auto_confirm_after_hours: int = Field(24, alias="AUTO_CONFIRM_AFTER_HOURS", ge=1)

    cors_origins: Optional[str] = Field(None, alias="CORS_ORIGINS")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
