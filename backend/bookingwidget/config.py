# backend/bookingwidget/config.py

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]  # repository root


class Settings(BaseSettings):
    database_url: str = "sqlite:///./data/bookingwidget.db"
    redis_url: str = ""  # empty = no slot cache, no events

    # Embed
    embed_base_url: str = "https://bookingtms.com"
    embed_restrict_origin: bool = False

    # Payment collaborator (refunds)
    payments_api_url: str = ""
    payments_api_key: str = ""
    payments_timeout_seconds: float = 10.0

    # Availability
    availability_read_retries: int = 2
    slots_cache_ttl_seconds: int = 300

    # Background completion checker
    completion_checker_enabled: bool = False
    completion_check_interval: int = 60

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @field_validator("embed_base_url", "payments_api_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return (v or "").strip().rstrip("/")

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            return f"sqlite:///{absolute_path}"
        return url


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
