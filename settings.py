# settings.py
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_FALLBACK_CSV = Path(__file__).resolve().parent / "bloodbanks_data.csv"


class Settings(BaseSettings):
    """
    Application settings, read from BLOODLINK_* environment variables or a
    .env file.
    """
    model_config = SettingsConfigDict(
        env_prefix="BLOODLINK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    api_base_url: str = Field(default="http://127.0.0.1:5050", description="Blood bank API base URL")
    fallback_csv_path: Path = Field(default=DEFAULT_FALLBACK_CSV,
                                    description="Static blood bank list used when the API is down")
    response_delay_ms: int = Field(default=3000, ge=0, description="Delay before a bank reply is resolved")
    concurrency: int = Field(default=4, ge=1, le=20, description="Parallel request submissions")
    fetch_timeout_seconds: float = Field(default=10, gt=0, description="Timeout for loading the blood bank list")
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    log_json: bool = Field(default=False, description="Render logs as JSON lines")


@lru_cache()
def get_settings() -> Settings:
    """Cached settings; call get_settings.cache_clear() to reload."""
    return Settings()
