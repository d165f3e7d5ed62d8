from typing import List, Optional, Union
import json
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    ENVIRONMENT: str = "development"
    NAME: str = "SubMinder"
    VERSION: str = "0.1.0"
    LOG_LEVEL: Optional[str] = None  # overrides the level in logging_config.json

    # Database
    DATABASE_URL: str = "sqlite:///./subminder.db"

    # Redis & Celery
    REDIS_PASSWORD: str = ""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    # Daily reminder run
    REMINDER_TIMEZONE: str = "Europe/Skopje"
    REMINDER_HOUR: int = 8
    REMINDER_MINUTE: int = 0
    """Pydantic v2 doesn't parse List[int] from a plain comma-separated string, hence the validator below."""
    REMINDER_OFFSETS: Union[str, List[int]] = "1,3,7,14"
    DEFAULT_REMINDER_DAYS: int = 3
    NOTIFICATION_TITLE: str = "Upcoming Subscription Charge!"
    CURRENCY_SYMBOL: str = "$"
    USE_SUBSCRIPTION_CURRENCY: bool = False
    PUSH_ICON: str = "/favicon.ico"
    REMINDER_DEDUPE_ENABLED: bool = False

    # Firebase Cloud Messaging
    FCM_PROJECT_ID: Optional[str] = None
    FCM_CREDENTIALS_JSON: Optional[str] = None  # path or inline JSON
    FCM_DRY_RUN: bool = False

    @field_validator("REMINDER_OFFSETS", mode="before")
    def assemble_reminder_offsets(cls, v: Union[str, List[int]]) -> List[int]:
        if not v:
            return []
        if isinstance(v, str):
            if v.strip().startswith("["):
                v = json.loads(v)
            else:
                v = [i for i in v.split(",") if i.strip()]
        return [int(i) for i in v]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()
