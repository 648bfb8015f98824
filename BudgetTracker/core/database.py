"""
Local SQLite mirror of the remote budget data.

This module keeps a key/value copy of every remote table (transactions, categories,
budget settings and accounts) so the application stays usable offline. Values are
stored as JSON records. A metadata table tracks the mirror state, the last successful
sync and the backend the data was mirrored from. The schema is verified on startup
and recreated when invalid.
"""

import datetime
import enum
import json
import logging
import sqlite3
import time
from typing import Any, Dict, List, Optional

import pandas as pd
from PySide6 import QtCore

from .models import Account, BudgetSettings, Category, Table, Transaction, now_str
from ..settings import lib
from ..status import status

TOMBSTONES_KEY = 'deleted_transactions'
CATEGORY_TOMBSTONES_KEY = 'deleted_categories'
PENDING_CATEGORIES_KEY = 'pending_categories'
PENDING_SETTINGS_KEY = 'pending_budget_settings'

META_SCHEMA: Dict[str, str] = {
    'meta_id': 'INTEGER PRIMARY KEY',
    'last_sync': 'TEXT',
    'state': 'TEXT',
    'remote_url': 'TEXT',
}

MIRROR_SCHEMA: Dict[str, str] = {
    'key': 'TEXT PRIMARY KEY',
    'value': 'TEXT',
    'updated': 'TEXT',
}

TRANSACTION_COLUMNS: List[str] = [
    'id', 'amount', 'description', 'category_id', 'transaction_type', 'transaction_date', 'synced'
]


class DbTable(enum.StrEnum):
    """Enum for database tables."""
    Meta = 'metatable'
    Mirror = 'mirror'


class CacheState(enum.StrEnum):
    """Enum for cache state values."""
    Uninitialized = 'cache is uninitialized'
    Empty = 'cache is empty'
    Stale = 'cache is stale'
    Error = 'cache has error'
    Valid = 'cache is valid'


def _remote_url() -> str:
    return lib.settings.get_section('remote').get('url', '')


class DatabaseAPI(QtCore.QObject):
    """Database API for the local mirror. Handles schema creation, validation, and data access."""

    def __init__(self, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent=parent)
        self._initialize_schema_if_needed()

    def _initialize_schema_if_needed(self) -> None:
        """
        Ensures the database file and schema are valid.
        If the DB file doesn't exist, or a table is missing/invalid, it recreates them.
        """
        conn: Optional[sqlite3.Connection] = None
        try:
            db_file_exists = lib.settings.db_path.exists()
            conn = self.connection()

            schema_is_valid = False
            if db_file_exists:
                schema_is_valid = all(
                    self._columns_valid_in_conn(conn, table.value, schema)
                    for table, schema in ((DbTable.Meta, META_SCHEMA), (DbTable.Mirror, MIRROR_SCHEMA))
                )

            if not db_file_exists or not schema_is_valid:
                logging.info(
                    f'Recreating database schema (DB exists: {db_file_exists}, Schema valid: {schema_is_valid}).'
                )
                conn.execute(f'DROP TABLE IF EXISTS {DbTable.Meta.value}')
                conn.execute(f'DROP TABLE IF EXISTS {DbTable.Mirror.value}')

                for table, schema in ((DbTable.Meta, META_SCHEMA), (DbTable.Mirror, MIRROR_SCHEMA)):
                    cols_sql = ', '.join(f'"{name}" {typedef}' for name, typedef in schema.items())
                    conn.execute(f'CREATE TABLE {table.value} ({cols_sql})')

                conn.execute(
                    f'INSERT INTO {DbTable.Meta.value} (meta_id, state, last_sync, remote_url) '
                    'VALUES (1, ?, ?, ?)',
                    (CacheState.Uninitialized.name, None, _remote_url())
                )
                conn.commit()
                logging.info('Database schema recreated successfully.')
            else:
                logging.debug('Existing database schema is considered valid.')

        except sqlite3.Error as e:
            logging.error(f'SQLite error during schema initialization: {e}. Attempting recovery.', exc_info=True)
            if conn:
                conn.close()
                conn = None
            self.delete()
            self._initialize_schema_if_needed()
        finally:
            if conn:
                conn.close()

    @classmethod
    def _columns_valid_in_conn(cls, conn: sqlite3.Connection, table_name: str, schema: Dict[str, str]) -> bool:
        if not cls._table_exists_in_conn(conn, table_name):
            logging.warning(f'Table "{table_name}" is missing. Schema will be recreated.')
            return False
        cursor = conn.execute(f'PRAGMA table_info({table_name})')
        current_columns = {row[1] for row in cursor.fetchall()}
        if not set(schema).issubset(current_columns):
            logging.warning(
                f'Table "{table_name}" schema is invalid. Missing columns: {set(schema) - current_columns}.'
            )
            return False
        return True

    @QtCore.Slot()
    def reset_cache(self) -> None:
        """Resets the local mirror by deleting the database file and recreating the schema."""
        logging.debug('Resetting local mirror database.')
        DatabaseAPI.delete()
        self._initialize_schema_if_needed()

    @classmethod
    def connection(cls) -> sqlite3.Connection:
        """Return a new connection to the mirror database."""
        lib.settings.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(lib.settings.db_path), timeout=2.0)
        conn.set_progress_handler(lambda: logging.debug('Waiting on DB lock…'), 1000)
        return conn

    @staticmethod
    def _update_state_in_conn(conn: sqlite3.Connection, state: CacheState) -> None:
        conn.execute(f'UPDATE {DbTable.Meta.value} SET state=? WHERE meta_id=1', (state.name,))

    @classmethod
    def _table_exists_in_conn(cls, conn: sqlite3.Connection, table_name: str) -> bool:
        cursor = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (table_name,)
        )
        return cursor.fetchone() is not None

    @classmethod
    def verify(cls) -> None:
        """
        Verify the mirror: DB exists, schema present, and the data belongs to the configured backend.

        A mirror recorded without a backend url is adopted by whichever backend is configured.

        Raises:
            status.CacheInvalidException: If the mirror is invalid.
        """
        conn: Optional[sqlite3.Connection] = None
        try:
            if not lib.settings.db_path.exists():
                raise status.CacheInvalidException(f'Local mirror DB missing at {lib.settings.db_path}.')

            conn = cls.connection()
            for table in DbTable:
                if not cls._table_exists_in_conn(conn, table.value):
                    raise status.CacheInvalidException(f'Table "{table.value}" missing. Reset required.')

            meta_row = conn.execute(
                f'SELECT remote_url FROM {DbTable.Meta.value} WHERE meta_id=1'
            ).fetchone()
            if not meta_row:
                raise status.CacheInvalidException(f'Metadata entry (meta_id=1) missing in "{DbTable.Meta.value}".')

            db_url = meta_row[0] or ''
            cfg_url = _remote_url()
            if db_url and cfg_url and db_url != cfg_url:
                cls._update_state_in_conn(conn, CacheState.Stale)
                conn.commit()
                raise status.CacheInvalidException(
                    f'Mirror source "{db_url}" differs from the configured backend "{cfg_url}".'
                )

            count_row = conn.execute(f'SELECT COUNT(*) FROM {DbTable.Mirror.value}').fetchone()
            state = CacheState.Valid if count_row and count_row[0] else CacheState.Empty
            cls._update_state_in_conn(conn, state)
            conn.commit()
            logging.debug(f'Mirror verified: {state.value}.')

        except sqlite3.Error as e:
            logging.error(f'SQLite error during mirror verification: {e}', exc_info=True)
            raise status.CacheInvalidException(f'SQLite error verifying mirror: {e}') from e
        finally:
            if conn:
                conn.close()

    @classmethod
    def delete(cls) -> None:
        """Delete the local mirror database file, retrying on failure.

        Raises:
            status.CacheInvalidException: If unable to remove the database file after retries.
        """
        db_file = lib.settings.db_path
        if not db_file.exists():
            logging.debug('No mirror database found to delete.')
            return

        max_attempts = 5
        wait_seconds = 0.5

        for attempt in range(1, max_attempts + 1):
            try:
                db_file.unlink()
                logging.info(f'Mirror database removed: {db_file}')
                return
            except OSError as ex:
                logging.error(f'Error removing mirror DB (attempt {attempt}/{max_attempts}): {ex}')
                if attempt == max_attempts:
                    raise status.CacheInvalidException(
                        f'Failed to remove mirror DB {db_file} after {max_attempts} attempts: {ex}'
                    ) from ex
                time.sleep(wait_seconds)
                wait_seconds *= 1.5

    @classmethod
    def stamp(cls) -> None:
        """Record a successful remote read: last sync timestamp and source backend."""
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = cls.connection()
            conn.execute(
                f'UPDATE {DbTable.Meta.value} SET last_sync=?, remote_url=? WHERE meta_id=1',
                (now_str(), _remote_url())
            )
            conn.commit()
        finally:
            if conn:
                conn.close()

    @classmethod
    def get_stamp(cls) -> Optional[datetime.datetime]:
        """Retrieve the last synchronization timestamp, or None if never synced."""
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = cls.connection()
            row = conn.execute(f'SELECT last_sync FROM {DbTable.Meta.value} WHERE meta_id=1').fetchone()
            if row and row[0]:
                try:
                    return datetime.datetime.fromisoformat(row[0])
                except ValueError:
                    logging.warning(f'Invalid last sync date format in DB: {row[0]}.')
            return None
        finally:
            if conn:
                conn.close()

    @classmethod
    def set_state(cls, state: CacheState) -> None:
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = cls.connection()
            cls._update_state_in_conn(conn, state)
            conn.commit()
            logging.debug(f'Mirror state updated to: {state.value}.')
        finally:
            if conn:
                conn.close()

    @classmethod
    def get_state(cls) -> CacheState:
        """Retrieve the current mirror state, or CacheState.Error if unable to determine."""
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = cls.connection()
            if not cls._table_exists_in_conn(conn, DbTable.Meta.value):
                logging.warning(f'Metatable "{DbTable.Meta.value}" not found when getting state.')
                return CacheState.Error

            row = conn.execute(f'SELECT state FROM {DbTable.Meta.value} WHERE meta_id=1').fetchone()
            if row and row[0]:
                try:
                    return CacheState[row[0]]
                except KeyError:
                    logging.warning(f'Invalid state value "{row[0]}" found in database.')
            return CacheState.Error
        finally:
            if conn:
                conn.close()

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """Return the decoded value mirrored under key.

        Returns the default when nothing was mirrored yet or when the mirror is invalid.
        """
        try:
            cls.verify()
        except status.CacheInvalidException as e:
            logging.warning(f'Mirror verification failed, returning default for "{key}": {e}')
            return default

        conn: Optional[sqlite3.Connection] = None
        try:
            conn = cls.connection()
            row = conn.execute(
                f'SELECT value FROM {DbTable.Mirror.value} WHERE key = ?', (key,)
            ).fetchone()
        except sqlite3.Error as e:
            logging.error(f'Error loading "{key}" from mirror: {e}', exc_info=True)
            cls.set_state(CacheState.Error)
            return default
        finally:
            if conn:
                conn.close()

        if not row or row[0] is None:
            return default
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            logging.error(f'Mirrored value for "{key}" is not valid JSON: {e}')
            return default

    @classmethod
    def put(cls, key: str, value: Any) -> None:
        """Store a JSON-serializable value under key, replacing any previous value.

        Raises:
            sqlite3.Error: If the write fails.
        """
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = cls.connection()
            conn.execute(
                f'INSERT OR REPLACE INTO {DbTable.Mirror.value} (key, value, updated) VALUES (?, ?, ?)',
                (key, json.dumps(value), now_str())
            )
            cls._update_state_in_conn(conn, CacheState.Valid)
            conn.commit()
            logging.debug(f'Mirrored "{key}".')
        except sqlite3.Error as e:
            logging.error(f'Failed to mirror "{key}": {e}', exc_info=True)
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                conn.close()

    @classmethod
    def load_transactions(cls) -> List[Transaction]:
        return [Transaction.from_record(r) for r in cls.get(Table.Transactions.value, [])]

    @classmethod
    def save_transactions(cls, transactions: List[Transaction]) -> None:
        cls.put(Table.Transactions.value, [t.to_record() for t in transactions])

    @classmethod
    def load_categories(cls) -> List[Category]:
        return [Category.from_record(r) for r in cls.get(Table.Categories.value, [])]

    @classmethod
    def save_categories(cls, categories: List[Category]) -> None:
        cls.put(Table.Categories.value, [c.to_record() for c in categories])

    @classmethod
    def load_settings(cls) -> Optional[BudgetSettings]:
        record = cls.get(Table.BudgetSettings.value)
        return BudgetSettings.from_record(record) if record else None

    @classmethod
    def save_settings(cls, settings: BudgetSettings) -> None:
        cls.put(Table.BudgetSettings.value, settings.to_record())

    @classmethod
    def load_accounts(cls) -> List[Account]:
        return [Account.from_record(r) for r in cls.get(Table.Accounts.value, [])]

    @classmethod
    def save_accounts(cls, accounts: List[Account]) -> None:
        cls.put(Table.Accounts.value, [a.to_record() for a in accounts])

    @classmethod
    def load_tombstones(cls) -> List[str]:
        """Ids of transactions deleted locally whose remote delete is still pending."""
        return list(cls.get(TOMBSTONES_KEY, []))

    @classmethod
    def save_tombstones(cls, ids: List[str]) -> None:
        cls.put(TOMBSTONES_KEY, sorted(set(ids)))

    @classmethod
    def load_category_tombstones(cls) -> List[str]:
        """Ids of categories deleted locally whose remote delete is still pending."""
        return list(cls.get(CATEGORY_TOMBSTONES_KEY, []))

    @classmethod
    def save_category_tombstones(cls, ids: List[str]) -> None:
        cls.put(CATEGORY_TOMBSTONES_KEY, sorted(set(ids)))

    @classmethod
    def load_pending_categories(cls) -> List[str]:
        """Ids of categories created or edited locally that the backend has not stored yet."""
        return list(cls.get(PENDING_CATEGORIES_KEY, []))

    @classmethod
    def save_pending_categories(cls, ids: List[str]) -> None:
        cls.put(PENDING_CATEGORIES_KEY, sorted(set(ids)))

    @classmethod
    def settings_pending(cls) -> bool:
        """True when the mirrored starting amount still has to be written to the backend."""
        return bool(cls.get(PENDING_SETTINGS_KEY, False))

    @classmethod
    def set_settings_pending(cls, value: bool) -> None:
        cls.put(PENDING_SETTINGS_KEY, bool(value))

    @classmethod
    def transactions_frame(cls) -> pd.DataFrame:
        """Load mirrored transactions into a pandas DataFrame."""
        records = cls.get(Table.Transactions.value, [])
        df = pd.DataFrame(records, columns=TRANSACTION_COLUMNS)
        logging.debug(f'Loaded {len(df)} mirrored transactions.')
        return df


database = DatabaseAPI()
