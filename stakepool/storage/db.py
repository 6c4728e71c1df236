# MIT License
# Copyright (c) 2025 Hashborn

import sqlite3
import threading
from typing import Optional, Tuple, List

# (owner, subaccount, value)
Row = Tuple[str, bytes, str]

class StorageDB:
    def __init__(self, db_path: str):
        self.db_path = db_path
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.cursor = self.conn.cursor()
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        with self._lock:
            # Deposit ledger: JSON-encoded deposit list per account
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS deposits (
                    owner TEXT NOT NULL,
                    subaccount BLOB NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (owner, subaccount)
                )
            ''')
            # Stake index: u64 amounts stored as text (exceeds sqlite INTEGER)
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS stakes (
                    owner TEXT NOT NULL,
                    subaccount BLOB NOT NULL,
                    amount TEXT NOT NULL,
                    PRIMARY KEY (owner, subaccount)
                )
            ''')
            # Counters and misc scalars
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS meta (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            ''')
            self.conn.commit()

    def close(self):
        with self._lock:
            self.conn.close()

    # --- Account Methods ---
    def get_deposits(self, owner: str, subaccount: bytes) -> Optional[str]:
        with self._lock:
            self.cursor.execute('SELECT data FROM deposits WHERE owner = ? AND subaccount = ?', (owner, subaccount))
            row = self.cursor.fetchone()
            return row[0] if row else None

    def get_stake(self, owner: str, subaccount: bytes) -> Optional[str]:
        with self._lock:
            self.cursor.execute('SELECT amount FROM stakes WHERE owner = ? AND subaccount = ?', (owner, subaccount))
            row = self.cursor.fetchone()
            return row[0] if row else None

    def iter_deposits(self, owner: Optional[str] = None) -> List[Row]:
        """All deposit rows ordered by (owner, subaccount), optionally for one owner."""
        with self._lock:
            if owner is None:
                self.cursor.execute('SELECT owner, subaccount, data FROM deposits ORDER BY owner, subaccount')
            else:
                self.cursor.execute(
                    'SELECT owner, subaccount, data FROM deposits WHERE owner = ? ORDER BY subaccount', (owner,)
                )
            return [(r[0], bytes(r[1]), r[2]) for r in self.cursor.fetchall()]

    def iter_stakes(self) -> List[Row]:
        """All stake rows ordered by (owner, subaccount)."""
        with self._lock:
            self.cursor.execute('SELECT owner, subaccount, amount FROM stakes ORDER BY owner, subaccount')
            return [(r[0], bytes(r[1]), r[2]) for r in self.cursor.fetchall()]

    def write_account(self, owner: str, subaccount: bytes, deposits: Optional[str], stake: Optional[str]):
        """
        Writes both maps for one account in a single transaction.

        A value of None deletes that row. Either both statements land or neither.
        """
        with self._lock:
            try:
                if deposits is None:
                    self.cursor.execute('DELETE FROM deposits WHERE owner = ? AND subaccount = ?', (owner, subaccount))
                else:
                    self.cursor.execute(
                        'INSERT OR REPLACE INTO deposits (owner, subaccount, data) VALUES (?, ?, ?)',
                        (owner, subaccount, deposits)
                    )
                if stake is None:
                    self.cursor.execute('DELETE FROM stakes WHERE owner = ? AND subaccount = ?', (owner, subaccount))
                else:
                    self.cursor.execute(
                        'INSERT OR REPLACE INTO stakes (owner, subaccount, amount) VALUES (?, ?, ?)',
                        (owner, subaccount, stake)
                    )
                self.conn.commit()
            except sqlite3.Error:
                self.conn.rollback()
                raise

    # --- Meta Methods ---
    def get_meta(self, key: str) -> Optional[str]:
        with self._lock:
            self.cursor.execute('SELECT value FROM meta WHERE key = ?', (key,))
            row = self.cursor.fetchone()
            return row[0] if row else None

    def increment_meta(self, key: str, delta: int = 1) -> int:
        """Adds delta to an integer counter, commits, and returns the new value."""
        with self._lock:
            self.cursor.execute('SELECT value FROM meta WHERE key = ?', (key,))
            row = self.cursor.fetchone()
            value = (int(row[0]) if row else 0) + delta
            self.cursor.execute('INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)', (key, str(value)))
            self.conn.commit()
            return value
