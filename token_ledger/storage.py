"""
Storage Backend Module

Document-style tables behind one small interface, with an in-memory backend
for tests and a SQLite backend for persistence. Token amounts are stored as
decimal integer strings so 18-decimal base units never pass through a float.

Transactions nest. ``atomic()`` holds the backend lock from begin to commit
or rollback, so every ledger object sharing a backend sees whole operations
only. An inner block that fails undoes its own writes; the outermost block
decides what is kept.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Any, Tuple, Union
from datetime import datetime, timezone
import sqlite3
import json
import threading
from dataclasses import dataclass, asdict
from pathlib import Path
from contextlib import contextmanager


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        result = asdict(self)
        result['created_at'] = self.created_at.isoformat()
        result['updated_at'] = self.updated_at.isoformat()
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageRecord':
        """Create instance from dictionary"""
        if 'created_at' in data and isinstance(data['created_at'], str):
            data['created_at'] = datetime.fromisoformat(data['created_at'])
        if 'updated_at' in data and isinstance(data['updated_at'], str):
            data['updated_at'] = datetime.fromisoformat(data['updated_at'])

        return cls(**data)


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0
        self._on_commit: List[List[Callable[[], None]]] = []

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace a record"""

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record, or None"""

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """All records of a table in insertion order"""

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Records whose fields equal every value in filters"""

    @abstractmethod
    def count(self, table: str) -> int:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    @abstractmethod
    def begin_transaction(self) -> None:
        """Open a transaction, or a savepoint inside the open one"""

    @abstractmethod
    def commit(self) -> None:
        """Keep the innermost level's writes"""

    @abstractmethod
    def rollback(self) -> None:
        """Undo the innermost level's writes"""

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def on_commit(self, callback: Callable[[], None]) -> None:
        """Run callback once the outermost atomic() block commits; drop it on rollback"""
        if self._on_commit:
            self._on_commit[-1].append(callback)
        else:
            callback()

    @contextmanager
    def atomic(self):
        """Run the block as one transaction, holding the backend lock throughout"""
        with self._lock:
            self.begin_transaction()
            self._on_commit.append([])
            try:
                yield
                self.commit()
            except Exception:
                self._on_commit.pop()
                self.rollback()
                raise

            callbacks = self._on_commit.pop()
            if self._on_commit:
                self._on_commit[-1].extend(callbacks)
                callbacks = []

        for callback in callbacks:
            callback()


_MISSING = object()


class InMemoryStorage(StorageInterface):
    """
    In-memory storage.

    Each open transaction level keeps an undo log of the prior value of every
    record it overwrites, so rollback costs the number of writes, not the size
    of the store.
    """

    def __init__(self):
        super().__init__()
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._undo: List[Dict[Tuple[str, str], Any]] = []

    @staticmethod
    def _copy(record: Dict[str, Any]) -> Dict[str, Any]:
        return json.loads(json.dumps(record, default=str))

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self._data.setdefault(table, {})

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            rows = self._table(table)
            if self._undo and (table, record_id) not in self._undo[-1]:
                self._undo[-1][(table, record_id)] = rows.get(record_id, _MISSING)
            rows[record_id] = self._copy(data)

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._table(table).get(record_id)
            return self._copy(record) if record is not None else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [self._copy(record) for record in self._table(table).values()]

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            return record_id in self._table(table)

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                self._copy(record) for record in self._table(table).values()
                if all(key in record and record[key] == value for key, value in filters.items())
            ]

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._table(table))

    def close(self) -> None:
        """Nothing to release"""

    def begin_transaction(self) -> None:
        with self._lock:
            self._undo.append({})
            self._depth += 1

    def commit(self) -> None:
        with self._lock:
            if not self._undo:
                return
            undo = self._undo.pop()
            self._depth -= 1
            if self._undo:
                # The enclosing level must still be able to restore what it saw
                parent = self._undo[-1]
                for key, previous in undo.items():
                    parent.setdefault(key, previous)

    def rollback(self) -> None:
        with self._lock:
            if not self._undo:
                return
            undo = self._undo.pop()
            self._depth -= 1
            for (table, record_id), previous in undo.items():
                if previous is _MISSING:
                    self._table(table).pop(record_id, None)
                else:
                    self._table(table)[record_id] = previous


class SQLiteStorage(StorageInterface):
    """
    SQLite storage for persistence.

    The outermost transaction is an explicit BEGIN; nested levels are
    savepoints named after their depth.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        super().__init__()
        self.db_path = str(db_path)
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
        self._connection.row_factory = sqlite3.Row
        self._tables = set()

        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    def _commit_unless_in_transaction(self) -> None:
        if not self._depth:
            self._connection.commit()

    def _ensure_table(self, table: str) -> None:
        if table in self._tables:
            return
        self._connection.execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._commit_unless_in_transaction()
        if not self._depth:
            self._tables.add(table)

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._ensure_table(table)

            now = datetime.now(timezone.utc).isoformat()
            # Keep the original created_at on replace
            self._connection.execute(f"""
                INSERT OR REPLACE INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?,
                    COALESCE((SELECT created_at FROM {table} WHERE id = ?), ?),
                    ?)
            """, (record_id, json.dumps(data, default=str), record_id, now, now))

            self._commit_unless_in_transaction()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            row = self._connection.execute(
                f"SELECT data FROM {table} WHERE id = ?", (record_id,)
            ).fetchone()
            return json.loads(row['data']) if row else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"SELECT data FROM {table} ORDER BY created_at, rowid")
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(
                f"SELECT 1 FROM {table} WHERE id = ? LIMIT 1", (record_id,)
            )
            return cursor.fetchone() is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Match on decoded JSON fields"""
        return [
            record for record in self.load_all(table)
            if all(key in record and record[key] == value for key, value in filters.items())
        ]

    def count(self, table: str) -> int:
        with self._lock:
            self._ensure_table(table)
            return self._connection.execute(f"SELECT COUNT(*) AS count FROM {table}").fetchone()['count']

    def begin_transaction(self) -> None:
        with self._lock:
            if self._depth == 0:
                self._connection.execute("BEGIN")
            else:
                self._connection.execute(f"SAVEPOINT level_{self._depth}")
            self._depth += 1

    def commit(self) -> None:
        with self._lock:
            if self._depth == 0:
                return
            if self._depth == 1:
                self._connection.commit()
            else:
                self._connection.execute(f"RELEASE SAVEPOINT level_{self._depth - 1}")
            self._depth -= 1

    def rollback(self) -> None:
        with self._lock:
            if self._depth == 0:
                return
            if self._depth == 1:
                self._connection.rollback()
                # Tables created inside the transaction are gone again
                self._tables.clear()
            else:
                savepoint = f"level_{self._depth - 1}"
                self._connection.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")
                self._connection.execute(f"RELEASE SAVEPOINT {savepoint}")
            self._depth -= 1

    def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(database_url: str) -> StorageInterface:
    """
    Build a storage backend from a database URL.

    Supported forms:
        memory://                 in-memory storage
        sqlite://:memory:         transient SQLite database
        sqlite:///path/to/db      SQLite database file
    """
    if database_url in ("memory://", "memory", ""):
        return InMemoryStorage()
    if database_url.startswith("sqlite://"):
        path = database_url[len("sqlite://"):]
        if path.startswith("/"):
            path = path[1:] or ":memory:"
        return SQLiteStorage(path or ":memory:")
    raise ValueError(f"Unsupported database URL: {database_url}")
