# MIT License
# Copyright (c) 2025 Hashborn

import sqlite3
import threading
from functools import wraps
from typing import List, Optional
from ...protocol.types.address import AddressRecord
from ...protocol.types.common import AddressStatus, DatabaseError


def _db_errors(method):
    """Re-raises sqlite failures as DatabaseError."""
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except sqlite3.Error as e:
            raise DatabaseError(f"{method.__name__} failed: {e}") from e
    return wrapper


class AddressStore:
    """
    Local cache of derived addresses, one row per key index.

    Each write is a single statement committed on its own; sequences of calls
    are not atomic.
    """

    _COLUMNS = "idx, address, balance, status, security_level"

    def __init__(self, db_path: str):
        try:
            self.conn = sqlite3.connect(db_path, check_same_thread=False)
        except sqlite3.Error as e:
            raise DatabaseError(f"Database initialisation failed: {e}") from e
        self.cursor = self.conn.cursor()
        self._lock = threading.Lock()
        self._init_db()

    @_db_errors
    def _init_db(self):
        with self._lock:
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS addresses (
                    idx INTEGER PRIMARY KEY,
                    address TEXT,
                    balance INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'new',
                    security_level INTEGER NOT NULL DEFAULT 2
                )
            ''')
            self.cursor.execute('CREATE INDEX IF NOT EXISTS addresses_by_address ON addresses (address)')
            self.conn.commit()

    @staticmethod
    def _to_record(row) -> AddressRecord:
        idx, address, balance, status, security_level = row
        return AddressRecord(
            index=idx,
            address=address or "",
            balance=int(balance),
            status=AddressStatus(status),
            security_level=security_level,
        )

    def _select(self, where: str = "", params: tuple = (), order: str = "ASC", limit: Optional[int] = None) -> List[AddressRecord]:
        sql = f'SELECT {self._COLUMNS} FROM addresses {where} ORDER BY idx {order}'
        if limit is not None:
            sql += f' LIMIT {int(limit)}'
        with self._lock:
            self.cursor.execute(sql, params)
            rows = self.cursor.fetchall()
        return [self._to_record(r) for r in rows]

    # --- Reads ---
    @_db_errors
    def get(self, index: int) -> Optional[AddressRecord]:
        rows = self._select('WHERE idx = ?', (index,))
        return rows[0] if rows else None

    @_db_errors
    def by_index_range(self, start: int = 0, end: Optional[int] = None, descending: bool = False) -> List[AddressRecord]:
        """Records with start <= index (< end), sorted by index."""
        order = "DESC" if descending else "ASC"
        if end is None:
            return self._select('WHERE idx >= ?', (start,), order)
        return self._select('WHERE idx >= ? AND idx < ?', (start, end), order)

    @_db_errors
    def by_nonzero_balance(self, descending: bool = False) -> List[AddressRecord]:
        return self._select('WHERE balance != 0', (), "DESC" if descending else "ASC")

    @_db_errors
    def first_with_status(self, status: AddressStatus, min_index: int = 0) -> Optional[AddressRecord]:
        rows = self._select('WHERE status = ? AND idx >= ?', (status.value, min_index), limit=1)
        return rows[0] if rows else None

    @_db_errors
    def first_unused(self, min_index: int = 0) -> Optional[AddressRecord]:
        """Lowest `new` record at or above `min_index` that holds no funds."""
        rows = self._select(
            "WHERE status = ? AND balance = 0 AND idx >= ?", (AddressStatus.NEW.value, min_index), limit=1
        )
        return rows[0] if rows else None

    @_db_errors
    def last(self) -> Optional[AddressRecord]:
        """Record with the highest index."""
        rows = self._select(order="DESC", limit=1)
        return rows[0] if rows else None

    # --- Writes ---
    @_db_errors
    def insert(self, record: AddressRecord):
        with self._lock:
            self.cursor.execute(
                f'INSERT INTO addresses ({self._COLUMNS}) VALUES (?, ?, ?, ?, ?)',
                (record.index, record.address, record.balance, record.status.value, record.security_level)
            )
            self.conn.commit()

    @_db_errors
    def update_balance_and_status(self, index: int, balance: int, status: AddressStatus) -> int:
        with self._lock:
            self.cursor.execute(
                'UPDATE addresses SET balance = ?, status = ? WHERE idx = ?',
                (balance, status.value, index)
            )
            self.conn.commit()
            return self.cursor.rowcount

    @_db_errors
    def update_balance(self, address: str, balance: int) -> int:
        """Updates every record carrying `address` (with or without checksum)."""
        with self._lock:
            self.cursor.execute(
                'UPDATE addresses SET balance = ? WHERE substr(address, 1, 81) = substr(?, 1, 81)',
                (balance, address)
            )
            self.conn.commit()
            return self.cursor.rowcount

    @_db_errors
    def set_status(self, index: int, status: AddressStatus) -> int:
        with self._lock:
            self.cursor.execute('UPDATE addresses SET status = ? WHERE idx = ?', (status.value, index))
            self.conn.commit()
            return self.cursor.rowcount

    def close(self):
        with self._lock:
            self.conn.close()
