"""
Data endpoints used by the ingestor: the REST source, the SQL destination
(also used as the utility endpoint for source queries) and a null endpoint for
dry runs.
"""

import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

from requests import RequestException, Session
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from rest_ingestor.errors import ConfigurationError, TransportError
from rest_ingestor.request_helpers import (
    apply_session_defaults,
    build_session,
    build_url,
    redact_url,
)
from rest_ingestor.small_utils import whitelist_request_opts


class RestEndpoint:
    def __init__(
        self,
        base_url: str,
        session: Optional[Session] = None,
        request_opts: Optional[Dict[str, Any]] = None,
        per_request_delay: Optional[float] = None,
    ):
        if not base_url:
            raise ConfigurationError("REST endpoint requires a base_url")
        self.base_url = base_url
        self.session = session if session is not None else Session()
        self.request_opts = whitelist_request_opts(request_opts or {})
        self.per_request_delay = float(per_request_delay or 0.0)
        self._target_url = base_url
        self._effective_url: Optional[str] = None

    @classmethod
    def from_config(cls, env_cfg: Dict[str, Any]) -> "RestEndpoint":
        sess = build_session(env_cfg.get("retries"))
        safe = whitelist_request_opts(env_cfg.get("request_defaults") or {})
        apply_session_defaults(sess, safe)
        return cls(
            build_url(env_cfg["base_url"], env_cfg.get("path", "")),
            session=sess,
            request_opts=safe,
            per_request_delay=env_cfg.get("per_request_delay"),
        )

    def set_target_url(self, url: str) -> None:
        self._target_url = url
        self._effective_url = None

    def current_effective_url(self) -> str:
        return self._effective_url or self._target_url

    def fetch(self) -> bytes:
        try:
            resp = self.session.get(self._target_url, **self.request_opts)
        except RequestException as e:
            raise TransportError(
                f"Error during REST call to {redact_url(self._target_url)}: {e}",
                url=self._target_url,
            ) from e
        self._effective_url = getattr(resp, "url", None) or self._target_url
        return resp.content

    def sleep(self) -> None:
        if self.per_request_delay > 0:
            time.sleep(self.per_request_delay)

    def __str__(self) -> str:
        return f"RestEndpoint({redact_url(self.base_url)})"


class SqlEndpoint:
    def __init__(
        self,
        dsn: Optional[str] = None,
        *,
        engine: Optional[Engine] = None,
        schema: Optional[str] = None,
        key_columns: Optional[Iterable[str]] = None,
    ):
        if engine is None:
            if not dsn:
                raise ConfigurationError("SQL endpoint requires a DSN")
            engine = create_engine(dsn, future=True)
        self.engine = engine
        self.schema = schema
        self.key_columns = list(key_columns or [])
        self._open: List[Connection] = []

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def qualified(self, table: str) -> str:
        if self.schema and "." not in table:
            return f"{self.schema}.{table}"
        return table

    def column_names(self, table: str) -> List[str]:
        try:
            cols = inspect(self.engine).get_columns(table, schema=self.schema)
        except NoSuchTableError as e:
            raise ConfigurationError(
                f"Destination table '{self.qualified(table)}' does not exist"
            ) from e
        if not cols:
            raise ConfigurationError(
                f"Destination table '{self.qualified(table)}' does not exist"
            )
        return [c["name"] for c in cols]

    def storage_engine_kind(self, table: str) -> str:
        if self.dialect not in ("mysql", "mariadb"):
            return self.dialect
        sql = (
            "SELECT ENGINE FROM information_schema.TABLES "
            "WHERE TABLE_SCHEMA = COALESCE(:schema, DATABASE()) "
            "AND TABLE_NAME = :table"
        )
        with self.engine.connect() as conn:
            kind = conn.execute(
                text(sql), {"schema": self.schema, "table": table}
            ).scalar()
        return (kind or "").lower()

    def upsert_clause(self, columns: List[str]) -> Tuple[str, str]:
        """Return (verb, suffix) for a multi-row upsert on this dialect."""
        if self.dialect == "sqlite":
            return "INSERT OR REPLACE INTO", ""
        if self.dialect == "postgresql":
            if not self.key_columns:
                raise ConfigurationError(
                    "PostgreSQL destinations require key_columns for upserts"
                )
            updates = ", ".join(
                f"{c} = EXCLUDED.{c}"
                for c in columns
                if c not in self.key_columns
            )
            action = f"UPDATE SET {updates}" if updates else "NOTHING"
            return (
                "INSERT INTO",
                f"\nON CONFLICT ({', '.join(self.key_columns)}) DO {action}",
            )
        return "REPLACE INTO", ""

    def execute_batch(self, sql: str, params: Dict[str, Any]) -> int:
        # one transaction per batch so an interrupted run never half-applies
        with self.engine.begin() as conn:
            return conn.execute(text(sql), params).rowcount

    def execute(self, sql: str) -> int:
        with self.engine.begin() as conn:
            return conn.execute(text(sql)).rowcount

    def query(self, sql: str):
        conn = self.engine.connect()
        self._open.append(conn)
        try:
            return conn.execute(text(sql)).mappings()
        except SQLAlchemyError:
            conn.close()
            self._open.remove(conn)
            raise

    def close(self) -> None:
        while self._open:
            self._open.pop().close()

    def __str__(self) -> str:
        return f"SqlEndpoint({self.engine.url.render_as_string(hide_password=True)})"


class _EmptyCursor:
    def fetchone(self):
        return None


class NullEndpoint:
    """Destination that accepts everything and writes nothing."""

    schema = None

    def __init__(self, columns: Optional[Iterable[str]] = None):
        self.columns = list(columns or [])

    def column_names(self, table: str) -> List[str]:
        return list(self.columns)

    def storage_engine_kind(self, table: str) -> str:
        return "null"

    def qualified(self, table: str) -> str:
        return table

    def upsert_clause(self, columns: List[str]) -> Tuple[str, str]:
        return "REPLACE INTO", ""

    def execute_batch(self, sql: str, params: Dict[str, Any]) -> int:
        return 0

    def execute(self, sql: str) -> int:
        return 0

    def query(self, sql: str):
        return _EmptyCursor()

    def close(self) -> None:
        return None

    def __str__(self) -> str:
        return "NullEndpoint"
