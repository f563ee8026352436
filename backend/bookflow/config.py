# backend/bookflow/config.py

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]  # repository root


class Settings(BaseSettings):
    database_url: str
    redis_url: str

    redis_socket_timeout: float = 2.0

    # Bounded waits inside booking/ledger transactions (PostgreSQL only)
    lock_timeout_ms: int = 5000
    statement_timeout_ms: int = 15000

    past_booking_grace_seconds: int = 60
    staff_schedules_enabled: bool = True

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            # Relative SQLite path -> absolute, anchored at the repository root
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            return f"sqlite:///{absolute_path}"
        return url

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


settings = Settings()
