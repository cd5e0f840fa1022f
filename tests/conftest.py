"""Shared pytest configuration and fixtures."""

from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from src.config import Settings, get_settings

AOAI_ENDPOINT = "https://aoai.test/openai/deployments/gpt-4o/chat/completions"


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-e2e",
        action="store_true",
        default=False,
        help="Run e2e tests that hit real services (requires .env with valid credentials)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("--run-e2e"):
        return
    skip_e2e = pytest.mark.skip(reason="Need --run-e2e flag to run")
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


@pytest.fixture(autouse=True)
def _no_dotenv(request: pytest.FixtureRequest) -> Generator[None]:
    """Block .env loading so tests that forget mock_settings fail locally, not just in CI.

    Sets Settings.model_config['env_file'] = None before each test (except e2e).
    Tests that use mock_settings bypass Settings() entirely, so this is transparent.
    Tests that forget mock_settings will hit a validation error on required fields.
    """
    if "e2e" in request.keywords:
        yield
        return

    get_settings.cache_clear()
    original = Settings.model_config.get("env_file")
    Settings.model_config["env_file"] = None

    try:
        yield
    finally:
        Settings.model_config["env_file"] = original
        get_settings.cache_clear()


@pytest.fixture
def mock_settings(tmp_path: Path) -> Generator[Any]:
    """Provide fake settings so tests don't need a .env file.

    Patches get_settings at every import site so cached references are overridden.
    """
    fake_settings = type(
        "FakeSettings",
        (),
        {
            "port": 3000,
            "log_level": "INFO",
            # Database
            "db_host": "db.test",
            "db_port": 5432,
            "db_user": "monitor",
            "db_password": "test-password",
            "db_name": "metrics",
            "db_ssl": False,
            # Summarization endpoint
            "azure_openai_endpoint": AOAI_ENDPOINT,
            "azure_openai_key": "aoai-test-fake-key",
            "llm_temperature": 0.7,
            "llm_max_tokens": 1500,
            "llm_timeout_seconds": 30.0,
            "prompt_max_records": 400,
            "prompt_truncation": "first",
            # SMTP / Email
            "mail_host": "smtp.test.com",
            "mail_port": 587,
            "mail_user": "reports@test.com",
            "mail_password": "test-password",
            "mail_from": "",
            "mail_to": "ops@test.com",
            # Report schedule
            "report_schedule_cron": "",
            "report_lookback_days": 7,
            "reports_dir": str(tmp_path / "reports"),
        },
    )()
    with (
        patch("src.config.get_settings", return_value=fake_settings),
        patch("src.report.summarizer.get_settings", return_value=fake_settings),
        patch("src.report.email.get_settings", return_value=fake_settings),
        patch("src.report.generator.get_settings", return_value=fake_settings),
        patch("src.report.scheduler.get_settings", return_value=fake_settings),
        patch("src.api.main.get_settings", return_value=fake_settings),
    ):
        yield fake_settings


# ---------------------------------------------------------------------------
# Metrics database fakes
# ---------------------------------------------------------------------------


def make_metric_row(hostname: str, timestamp: datetime, **overrides: Any) -> dict[str, Any]:
    """One ``metrics`` table row with plausible gauge values."""
    row: dict[str, Any] = {
        "timestamp": timestamp,
        "server_hostname": hostname,
        "cpu_usage": 42.5,
        "cpu_cores": 4,
        "cpu_model": "Intel Xeon",
        "cpu_speed": 2.4,
        "cpu_load_1m": 0.8,
        "cpu_load_5m": 0.7,
        "cpu_load_15m": 0.6,
        "memory_total": 8_000_000_000,
        "memory_free": 3_000_000_000,
        "memory_used": 5_000_000_000,
        "memory_percentage": 62.5,
        "disk_filesystem": "/dev/sda1",
        "disk_size": 100_000_000_000,
        "disk_used": 40_000_000_000,
        "disk_available": 60_000_000_000,
        "disk_percentage": 40.0,
        "network_interface": "eth0",
        "network_rx_bytes": 123_456,
        "network_tx_bytes": 654_321,
        "network_rx_rate": 1024.0,
        "network_tx_rate": 2048.0,
        "network_connections": 37,
        "created_at": timestamp,
    }
    row.update(overrides)
    return row


class FakeConnection:
    """Minimal asyncpg.Connection stand-in that answers the store's queries from a row list."""

    def __init__(self, rows: list[dict[str, Any]]) -> None:
        self.rows = rows
        self.closed = False
        self.queries: list[tuple[str, tuple[object, ...]]] = []

    def is_closed(self) -> bool:
        return self.closed

    async def close(self) -> None:
        self.closed = True

    async def fetchval(self, query: str, *args: object) -> int:
        self.queries.append((query, args))
        return 1

    async def fetch(self, query: str, *args: object) -> list[dict[str, Any]]:
        self.queries.append((query, args))
        if "DISTINCT server_hostname" in query:
            return [{"server_hostname": h} for h in sorted({r["server_hostname"] for r in self.rows})]
        rows = self.rows
        if "server_hostname = $1" in query:
            rows = [r for r in rows if r["server_hostname"] == args[0]]
        return [dict(r) for r in rows]


@pytest.fixture
def metric_rows() -> list[dict[str, Any]]:
    """3 samples for web-01 and 2 for db-01, 30 minutes apart."""
    base = datetime(2026, 10, 12, 0, 0, tzinfo=UTC)
    return [
        make_metric_row("web-01", base),
        make_metric_row("db-01", base + timedelta(minutes=1)),
        make_metric_row("web-01", base + timedelta(minutes=30)),
        make_metric_row("db-01", base + timedelta(minutes=31)),
        make_metric_row("web-01", base + timedelta(minutes=60), cpu_usage=91.0),
    ]


@pytest.fixture
def fake_connection(metric_rows: list[dict[str, Any]]) -> Generator[FakeConnection]:
    """Patch asyncpg.connect so every MetricsStore gets a FakeConnection over ``metric_rows``."""
    conn = FakeConnection(metric_rows)
    with patch("src.metrics.store.asyncpg.connect", new=AsyncMock(return_value=conn)):
        yield conn


def completion_body(text: str) -> dict[str, object]:
    """Azure OpenAI chat-completions response envelope."""
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": text}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 120, "completion_tokens": 30, "total_tokens": 150},
    }
