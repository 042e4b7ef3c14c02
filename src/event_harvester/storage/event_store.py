"""
Event Store.

Key-value store keyed by record identifier. The harvester only needs
conditional puts (dedup markers), plain puts (job snapshots), get by key and
a category/date query.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional

import psycopg2
from psycopg2.extras import Json

logger = logging.getLogger(__name__)


class PutOutcome(str, Enum):
    SUCCESS = "success"
    ALREADY_EXISTS = "already_exists"


class EventStore(ABC):
    """Abstract key-value event store."""

    @abstractmethod
    def conditional_put(self, key: str, record: Dict[str, Any]) -> PutOutcome:
        """Write the record only if the key is absent."""
        pass

    @abstractmethod
    def put(self, key: str, record: Dict[str, Any]) -> None:
        """Write or overwrite the record."""
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the record if present."""
        pass

    @abstractmethod
    def query(
        self,
        *,
        prefix: Optional[str] = None,
        category: Optional[str] = None,
        start_date: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Return records matching every given filter."""
        pass

    def close(self) -> None:
        """Release any held resources."""

    def __enter__(self) -> "EventStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class InMemoryEventStore(EventStore):
    """Process-local store, used for tests and dry runs."""

    def __init__(self):
        self._records: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def conditional_put(self, key: str, record: Dict[str, Any]) -> PutOutcome:
        with self._lock:
            if key in self._records:
                return PutOutcome.ALREADY_EXISTS
            self._records[key] = dict(record)
            return PutOutcome.SUCCESS

    def put(self, key: str, record: Dict[str, Any]) -> None:
        with self._lock:
            self._records[key] = dict(record)

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._records.get(key)
            return dict(record) if record is not None else None

    def delete(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)

    def query(self, *, prefix=None, category=None, start_date=None) -> List[Dict[str, Any]]:
        with self._lock:
            items = list(self._records.items())
        out = []
        for key, record in items:
            if prefix and not key.startswith(prefix):
                continue
            if category and record.get("category") != category:
                continue
            if start_date and record.get("startDate") != start_date:
                continue
            out.append(dict(record))
        return out

    def __len__(self) -> int:
        return len(self._records)


class PostgresEventStore(EventStore):
    """
    PostgreSQL-backed store over a single JSONB table.

    Conditional puts rely on ``INSERT ... ON CONFLICT DO NOTHING``; a zero
    rowcount means the key already exists.
    """

    TABLE = "harvester_records"

    CREATE_SQL = f"""
        CREATE TABLE IF NOT EXISTS {TABLE} (
            record_key TEXT PRIMARY KEY,
            record JSONB NOT NULL,
            category TEXT,
            start_date TEXT,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """

    def __init__(self, db_connection, ensure_schema: bool = True) -> None:
        """Initialize with an active psycopg2 connection."""
        self.conn = db_connection
        self._lock = threading.Lock()
        if ensure_schema:
            self._ensure_schema()

    @classmethod
    def from_settings(cls, settings) -> "PostgresEventStore":
        return cls(psycopg2.connect(**settings.get_psycopg2_params()))

    def _ensure_schema(self) -> None:
        with self._lock, self.conn.cursor() as cur:
            cur.execute(self.CREATE_SQL)
        self.conn.commit()

    def _execute(self, sql: str, params: tuple) -> int:
        with self._lock:
            try:
                with self.conn.cursor() as cur:
                    cur.execute(sql, params)
                    rowcount = cur.rowcount
                self.conn.commit()
                return rowcount
            except Exception:
                self.conn.rollback()
                raise

    def conditional_put(self, key: str, record: Dict[str, Any]) -> PutOutcome:
        rowcount = self._execute(
            f"""
            INSERT INTO {self.TABLE} (record_key, record, category, start_date)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (record_key) DO NOTHING
            """,
            (key, Json(record), record.get("category"), record.get("startDate")),
        )
        return PutOutcome.SUCCESS if rowcount == 1 else PutOutcome.ALREADY_EXISTS

    def put(self, key: str, record: Dict[str, Any]) -> None:
        self._execute(
            f"""
            INSERT INTO {self.TABLE} (record_key, record, category, start_date)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (record_key) DO UPDATE
               SET record = EXCLUDED.record,
                   category = EXCLUDED.category,
                   start_date = EXCLUDED.start_date,
                   updated_at = NOW()
            """,
            (key, Json(record), record.get("category"), record.get("startDate")),
        )

    def delete(self, key: str) -> None:
        self._execute(f"DELETE FROM {self.TABLE} WHERE record_key = %s", (key,))

    def _fetch(self, sql: str, params: tuple) -> List[tuple]:
        with self._lock:
            try:
                with self.conn.cursor() as cur:
                    cur.execute(sql, params)
                    rows = cur.fetchall()
                self.conn.commit()
                return rows
            except Exception:
                self.conn.rollback()
                raise

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        rows = self._fetch(f"SELECT record FROM {self.TABLE} WHERE record_key = %s", (key,))
        if not rows:
            return None
        record = rows[0][0]
        return json.loads(record) if isinstance(record, str) else record

    def query(self, *, prefix=None, category=None, start_date=None) -> List[Dict[str, Any]]:
        clauses, params = [], []
        if prefix:
            clauses.append("record_key LIKE %s")
            params.append(prefix.replace("%", r"\%").replace("_", r"\_") + "%")
        if category:
            clauses.append("category = %s")
            params.append(category)
        if start_date:
            clauses.append("start_date = %s")
            params.append(start_date)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._fetch(
            f"SELECT record FROM {self.TABLE} {where} ORDER BY updated_at DESC",
            tuple(params),
        )
        return [json.loads(r[0]) if isinstance(r[0], str) else r[0] for r in rows]

    def close(self) -> None:
        try:
            self.conn.close()
        except Exception as e:
            logger.warning(f"Error closing database connection: {e}")
