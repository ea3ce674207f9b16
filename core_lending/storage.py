"""
Storage Module

Keyed JSON record store with two backends: in-memory for tests and SQLite for
persistence. Records are plain dicts; amounts travel as Decimal strings.

Every unit of work runs inside ``atomic()``: the backend serializes units of
work against each other and either commits every write made inside the block
or none of them.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from decimal import Decimal
from datetime import date, datetime, timezone
import copy
import sqlite3
import json
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from contextlib import contextmanager


@dataclass
class StorageRecord:
    """Identity and timestamps shared by every persisted entity"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready dict: dates as ISO strings, Decimals as strings"""
        result = asdict(self)
        for key, value in result.items():
            if isinstance(value, (datetime, date)):
                result[key] = value.isoformat()
            elif isinstance(value, Decimal):
                result[key] = str(value)
        return result

    def touch(self) -> None:
        """Refresh the modification timestamp"""
        self.updated_at = datetime.now(timezone.utc)


class StorageInterface(ABC):
    """Contract every storage backend implements"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace a record"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Record by id, or None"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Every record of a table in insertion order"""
        pass

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Remove a record; True if it existed"""
        pass

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        """True if the id is present"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Records whose top-level fields equal every filter value"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Number of records in a table"""
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Drop every record of a table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release backend resources"""
        pass

    def begin_transaction(self) -> None:
        """Open a unit of work"""
        pass

    def commit(self) -> None:
        """Make the unit of work durable"""
        pass

    def rollback(self) -> None:
        """Discard the unit of work"""
        pass

    @contextmanager
    def atomic(self):
        """Run the block as one unit of work, rolled back on any exception"""
        self.begin_transaction()
        try:
            yield
        except BaseException:
            self.rollback()
            raise
        else:
            self.commit()


class InMemoryStorage(StorageInterface):
    """
    In-memory storage implementation for testing.

    Transactions hold the storage lock for their whole duration and restore a
    snapshot of every table on rollback.
    """

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._depth = 0
        self._snapshot: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None

    def _ensure_table(self, table: str) -> None:
        if table not in self._data:
            self._data[table] = {}

    @staticmethod
    def _copy(record: Dict[str, Any]) -> Dict[str, Any]:
        # JSON round trip prevents external mutation and normalizes types
        return json.loads(json.dumps(record, default=str))

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._ensure_table(table)
            self._data[table][record_id] = self._copy(data)

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            record = self._data[table].get(record_id)
            if record:
                return self._copy(record)
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Every record of a table in insertion order"""
        with self._lock:
            self._ensure_table(table)
            return [self._copy(record) for record in self._data[table].values()]

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            self._ensure_table(table)
            return self._data[table].pop(record_id, None) is not None

    def exists(self, table: str, record_id: str) -> bool:
        """True if the id is present"""
        with self._lock:
            self._ensure_table(table)
            return record_id in self._data[table]

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Records whose top-level fields equal every filter value"""
        with self._lock:
            self._ensure_table(table)
            return [
                self._copy(record)
                for record in self._data[table].values()
                if all(key in record and record[key] == value for key, value in filters.items())
            ]

    def count(self, table: str) -> int:
        """Number of records in a table"""
        with self._lock:
            self._ensure_table(table)
            return len(self._data[table])

    def clear_table(self, table: str) -> None:
        """Drop every record of a table"""
        with self._lock:
            self._data[table] = {}

    def begin_transaction(self) -> None:
        """Take the storage lock and snapshot all tables"""
        self._lock.acquire()
        if self._depth == 0:
            self._snapshot = copy.deepcopy(self._data)
        self._depth += 1

    def commit(self) -> None:
        """Keep the writes made since begin_transaction"""
        self._depth -= 1
        if self._depth == 0:
            self._snapshot = None
        self._lock.release()

    def rollback(self) -> None:
        """Restore the snapshot taken when the outermost transaction began"""
        self._depth -= 1
        if self._depth == 0:
            self._data = self._snapshot if self._snapshot is not None else {}
            self._snapshot = None
        self._lock.release()

    def close(self) -> None:
        pass


class SQLiteStorage(StorageInterface):
    """
    SQLite backend storing each record as a JSON document

    One table per record type with columns (id, data, created_at, updated_at).
    Units of work are BEGIN IMMEDIATE transactions, so a second writer waits
    for the first to finish.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        # Autocommit mode; transactions are opened explicitly with BEGIN IMMEDIATE
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._tables = set()

        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")

    def _ensure_table(self, table: str) -> None:
        if table in self._tables:
            return
        with self._lock:
            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self._connection.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{table}_created_at
                ON {table}(created_at)
            """)
            self._tables.add(table)

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._ensure_table(table)
            now = datetime.now(timezone.utc).isoformat()
            self._connection.execute(f"""
                INSERT INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
            """, (record_id, json.dumps(data, default=str), now, now))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            row = self._connection.execute(
                f"SELECT data FROM {table} WHERE id = ?", (record_id,)
            ).fetchone()
            if row:
                return json.loads(row['data'])
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(
                f"SELECT data FROM {table} ORDER BY created_at, rowid"
            )
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(
                f"DELETE FROM {table} WHERE id = ?", (record_id,)
            )
            return cursor.rowcount > 0

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            self._ensure_table(table)
            row = self._connection.execute(
                f"SELECT 1 FROM {table} WHERE id = ? LIMIT 1", (record_id,)
            ).fetchone()
            return row is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records whose JSON fields equal the given filter values"""
        with self._lock:
            self._ensure_table(table)
            conditions = []
            params: List[Any] = []
            for key, value in filters.items():
                conditions.append("json_extract(data, ?) = ?")
                params.extend([f"$.{key}", value])
            where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
            cursor = self._connection.execute(
                f"SELECT data FROM {table} {where_clause} ORDER BY created_at, rowid",
                params
            )
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def count(self, table: str) -> int:
        with self._lock:
            self._ensure_table(table)
            row = self._connection.execute(
                f"SELECT COUNT(*) as count FROM {table}"
            ).fetchone()
            return row['count']

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._ensure_table(table)
            self._connection.execute(f"DELETE FROM {table}")

    def begin_transaction(self) -> None:
        """Start a write transaction, taking the database write lock"""
        self._lock.acquire()
        if self._depth == 0:
            try:
                self._connection.execute("BEGIN IMMEDIATE")
            except Exception:
                self._lock.release()
                raise
        self._depth += 1

    def commit(self) -> None:
        """Commit when the outermost unit of work ends"""
        try:
            if self._depth == 1:
                self._connection.execute("COMMIT")
        finally:
            self._depth -= 1
            self._lock.release()

    def rollback(self) -> None:
        """Roll back when the outermost unit of work ends"""
        try:
            if self._depth == 1:
                self._connection.execute("ROLLBACK")
                # Tables created inside the transaction are gone again
                self._tables.clear()
        finally:
            self._depth -= 1
            self._lock.release()

    def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(database_url: str) -> StorageInterface:
    """
    Create a storage backend from a database URL.

    Supported forms: ``memory://`` and ``sqlite:///path/to/file.db``
    (``sqlite:///:memory:`` for a throwaway SQLite database).
    """
    if database_url.startswith("memory://"):
        return InMemoryStorage()
    if database_url.startswith("sqlite:///"):
        return SQLiteStorage(database_url[len("sqlite:///"):] or ":memory:")
    raise ValueError(f"Unsupported database URL: {database_url}")
