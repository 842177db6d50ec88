from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


PROJECT_ROOT = Path(__file__).resolve().parents[1]
ENV_FILES = [PROJECT_ROOT / ".env", ".env"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=ENV_FILES, extra="ignore")

    # DB
    DATABASE_URL: str = "sqlite:///./data/reminders.db"

    # App
    TZ: str = "Europe/Moscow"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # API
    API_KEY: str | None = None

    # Queue
    REDIS_URL: str | None = None
    QUEUE_PREFIX: str = "remindbot"
    JOB_VISIBILITY_TIMEOUT_SEC: int = 300

    # Reminders
    REMINDER_HORIZON_DAYS: int = 30
    MAX_POSTPONES: int = 2
    DEFAULT_POSTPONE_MIN: int = 15
    GRACE_PERIOD_MIN: int = 120
    ESCALATION_OFFSETS_MIN: list[int] = [15, 45, 60]
    DEFAULT_QUIET_START: str = "23:00"
    DEFAULT_QUIET_END: str = "08:00"
    LOCALE: str = "en"

    # Delivery
    DELIVERY_RATE_PER_SEC: float = 28.0
    DELIVERY_MAX_CONCURRENT: int = 5
    DELIVERY_TIMEOUT_SEC: float = 30.0
    DELIVERY_MAX_ATTEMPTS: int = 3
    DELIVERY_BACKOFF_BASE_SEC: float = 0.5

    # Worker
    WORKER_POLL_INTERVAL_SEC: float = 1.0
    WORKER_BATCH_SIZE: int = 50
    WORKER_DELIVER_CONCURRENCY: int = 5
    WORKER_ESCALATE_CONCURRENCY: int = 3
    WORKER_BACKGROUND_CONCURRENCY: int = 2
    HORIZON_REFRESH_SEC: int = 6 * 3600

    # Telegram
    TELEGRAM_BOT_TOKEN: str | None = None

    @field_validator("ESCALATION_OFFSETS_MIN")
    @classmethod
    def _offsets_increasing(cls, v: list[int]) -> list[int]:
        if len(v) != 3:
            raise ValueError("ESCALATION_OFFSETS_MIN must have exactly 3 values")
        if any(x <= 0 for x in v) or any(b <= a for a, b in zip(v, v[1:])):
            raise ValueError("ESCALATION_OFFSETS_MIN must be positive and strictly increasing")
        return v


settings = Settings()
