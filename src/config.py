from functools import lru_cache
from typing import ClassVar

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    port: int = 3000
    log_level: str = "INFO"

    # PostgreSQL metrics database
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = ""
    db_password: str = ""
    db_name: str = ""
    db_ssl: bool = False

    # Azure OpenAI chat-completions deployment (full URL incl. api-version)
    azure_openai_endpoint: str
    azure_openai_key: str
    llm_temperature: float = 0.7
    llm_max_tokens: int = 1500
    llm_timeout_seconds: float = 120.0

    # Prompt sizing
    prompt_max_records: int = 400
    prompt_truncation: str = "first"  # "first" (query order) or "latest"

    # SMTP / Email (optional; empty disables email)
    mail_host: str = ""
    mail_port: int = 587
    mail_user: str = ""
    mail_password: str = ""
    mail_from: str = ""  # Defaults to mail_user when empty
    mail_to: str = ""  # Comma-separated recipients

    # Report schedule (optional; empty disables the scheduler)
    report_schedule_cron: str = "0 12 * * 0"  # Sundays at noon
    report_lookback_days: int = 7
    reports_dir: str = "reports"

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Lazily load and cache settings. Fails at first call, not at import time."""
    return Settings()  # type: ignore[call-arg]  # pyright: ignore[reportCallIssue] fields loaded from env
