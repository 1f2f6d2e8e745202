import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Config:
    database_url: str
    listen_database_url: str
    notify_channel: str = "wellness_records"
    debounce_seconds: float = 2.0
    period_days: int = 7
    health_port: int = 8081
    log_format: str = "json"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        database_url = os.environ.get("DATABASE_URL")
        if not database_url:
            raise RuntimeError("DATABASE_URL must be set")

        return cls(
            database_url=database_url,
            listen_database_url=os.environ.get("WELLNESS_LISTEN_DATABASE_URL") or database_url,
            notify_channel=os.environ.get("WELLNESS_NOTIFY_CHANNEL", "wellness_records"),
            debounce_seconds=float(os.environ.get("WELLNESS_DEBOUNCE_SECONDS", "2.0")),
            period_days=int(os.environ.get("WELLNESS_PERIOD_DAYS", "7")),
            health_port=int(os.environ.get("WELLNESS_HEALTH_PORT", "8081")),
            log_format=os.environ.get("WELLNESS_LOG_FORMAT", "json"),
            log_level=os.environ.get("WELLNESS_LOG_LEVEL", "INFO"),
        )
