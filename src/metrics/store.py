"""PostgreSQL metrics store: connection handling and read queries.

A single ``MetricsStore`` is constructed at process start and shared by the
API and the scheduler.  The connection is opened lazily on first use; the
open is serialized by a lock so concurrent first requests share one
connection.  All queries are parameterized.  Query failures are logged and
degrade to an empty result.
"""

import asyncio
import logging
import ssl
from collections.abc import Sequence
from typing import Any, cast

import asyncpg  # type: ignore[import-untyped]

from src.config import Settings
from src.metrics.models import MetricRecord
from src.observability.metrics import DB_QUERIES_TOTAL

logger = logging.getLogger(__name__)

_SELECT_ALL_SQL = "SELECT * FROM metrics ORDER BY timestamp"

_SELECT_RECENT_SQL = """\
SELECT * FROM metrics
WHERE timestamp >= NOW() - make_interval(days => $1)
ORDER BY timestamp"""

_SELECT_BY_HOST_SQL = """\
SELECT * FROM metrics
WHERE server_hostname = $1
ORDER BY timestamp"""

_SELECT_RECENT_BY_HOST_SQL = """\
SELECT * FROM metrics
WHERE server_hostname = $1
  AND timestamp >= NOW() - make_interval(days => $2)
ORDER BY timestamp"""

_SELECT_HOSTNAMES_SQL = "SELECT DISTINCT server_hostname FROM metrics ORDER BY server_hostname"


class DataAccessFailure(Exception):
    """A connect or query against the metrics database failed."""


def _insecure_ssl_context() -> ssl.SSLContext:
    """TLS without certificate verification (managed Postgres with self-signed certs)."""
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


class MetricsStore:
    """Read-only accessor for the ``metrics`` table."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        user: str,
        password: str,
        database: str,
        use_ssl: bool = False,
    ) -> None:
        self._connect_kwargs: dict[str, Any] = {
            "host": host,
            "port": port,
            "user": user,
            "password": password,
            "database": database,
            "ssl": _insecure_ssl_context() if use_ssl else False,
        }
        self._conn: asyncpg.Connection | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> "MetricsStore":
        return cls(
            host=settings.db_host,
            port=settings.db_port,
            user=settings.db_user,
            password=settings.db_password,
            database=settings.db_name,
            use_ssl=settings.db_ssl,
        )

    @property
    def is_connected(self) -> bool:
        return self._conn is not None and not self._conn.is_closed()

    async def connect(self) -> asyncpg.Connection:
        """Open the connection if needed and return it (idempotent).

        Raises:
            DataAccessFailure: If the database cannot be reached.
        """
        async with self._lock:
            if self._conn is None or self._conn.is_closed():
                try:
                    self._conn = await asyncpg.connect(**self._connect_kwargs)
                except (OSError, asyncpg.PostgresError) as exc:
                    self._conn = None
                    msg = f"Could not connect to {self._connect_kwargs['host']}:{self._connect_kwargs['port']}"
                    raise DataAccessFailure(msg) from exc
                logger.info("Connected to metrics database %s", self._connect_kwargs["database"])
            return self._conn

    async def close(self) -> None:
        """Close the connection if open. Errors are logged, never raised."""
        async with self._lock:
            if self._conn is None:
                return
            try:
                await self._conn.close()
                logger.info("Metrics database connection closed")
            except Exception:
                logger.exception("Error closing metrics database connection")
            finally:
                self._conn = None

    async def _fetch(self, operation: str, query: str, *args: object) -> list[asyncpg.Record]:
        """Run one query, returning [] (and logging) on any database failure."""
        try:
            conn = await self.connect()
            try:
                rows = await conn.fetch(query, *args)
            except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
                raise DataAccessFailure(f"{operation} query failed") from exc
        except DataAccessFailure:
            DB_QUERIES_TOTAL.labels(operation=operation, status="error").inc()
            logger.exception("Error fetching %s from metrics database", operation)
            return []
        DB_QUERIES_TOTAL.labels(operation=operation, status="success").inc()
        return list(rows)

    @staticmethod
    def _to_records(rows: Sequence[Any]) -> list[MetricRecord]:
        return [cast(MetricRecord, dict(row)) for row in rows]

    async def fetch_all(self) -> list[MetricRecord]:
        """Every row in the metrics table, oldest first."""
        return self._to_records(await self._fetch("all", _SELECT_ALL_SQL))

    async def fetch_recent(self, window_days: int = 7) -> list[MetricRecord]:
        """Rows sampled within the last ``window_days`` days, oldest first."""
        return self._to_records(await self._fetch("recent", _SELECT_RECENT_SQL, window_days))

    async def fetch_by_host(self, hostname: str, window_days: int | None = None) -> list[MetricRecord]:
        """Rows for exactly ``hostname``, optionally limited to the last ``window_days`` days."""
        if window_days is None:
            rows = await self._fetch("by_host", _SELECT_BY_HOST_SQL, hostname)
        else:
            rows = await self._fetch("by_host", _SELECT_RECENT_BY_HOST_SQL, hostname, window_days)
        return self._to_records(rows)

    async def list_hostnames(self) -> list[str]:
        """Distinct hostnames present in the metrics table, sorted."""
        rows = await self._fetch("hostnames", _SELECT_HOSTNAMES_SQL)
        return [str(row["server_hostname"]) for row in rows]

    async def ping(self) -> bool:
        """Check the database answers a trivial query."""
        try:
            conn = await self.connect()
            await conn.fetchval("SELECT 1")
        except (DataAccessFailure, OSError, asyncpg.PostgresError, asyncpg.InterfaceError):
            logger.warning("Metrics database ping failed")
            return False
        return True
