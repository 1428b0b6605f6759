import os
import sqlite3
from contextlib import contextmanager

import structlog

from utils.constants import DB_FILE, DEFAULT_CURRENCY

logger = structlog.get_logger(__name__)

DEFAULT_ACCOUNT_NAME = "Checking"


class DatabaseManager:
    def __init__(self, db_path: str | None = None):
        self.db_path = db_path or DB_FILE
        self._conn: sqlite3.Connection | None = None

    def get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    def initialize(self, seed_defaults: bool = True):
        """Create schema and seed defaults."""
        conn = self.get_connection()
        self._create_schema(conn)
        self._migrate_schema(conn)
        if seed_defaults:
            self._seed_defaults(conn)
        conn.commit()
        logger.debug("database_initialized", path=self.db_path)

    def _migrate_schema(self, conn: sqlite3.Connection):
        """Idempotent ALTER TABLE for columns added after initial release."""
        cols = {row[1] for row in conn.execute("PRAGMA table_info(recurring_rules)").fetchall()}
        if "amount_type" not in cols:
            conn.execute(
                "ALTER TABLE recurring_rules ADD COLUMN amount_type TEXT NOT NULL DEFAULT 'fixed'"
            )
        if "total_occurrences" not in cols:
            conn.execute("ALTER TABLE recurring_rules ADD COLUMN total_occurrences INTEGER")
        if "occurrences_processed" not in cols:
            conn.execute(
                "ALTER TABLE recurring_rules ADD COLUMN occurrences_processed INTEGER NOT NULL DEFAULT 0"
            )
        cols = {row[1] for row in conn.execute("PRAGMA table_info(accounts)").fetchall()}
        if "pay_from_account_id" not in cols:
            conn.execute(
                "ALTER TABLE accounts ADD COLUMN pay_from_account_id INTEGER "
                "REFERENCES accounts(id) ON DELETE SET NULL"
            )

    def _create_schema(self, conn: sqlite3.Connection):
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS accounts (
                id                  INTEGER PRIMARY KEY AUTOINCREMENT,
                name                TEXT    NOT NULL UNIQUE,
                account_type        TEXT    NOT NULL DEFAULT 'checking',
                currency            TEXT    NOT NULL DEFAULT 'USD',
                initial_balance     REAL    NOT NULL DEFAULT 0.0,
                pay_from_account_id INTEGER REFERENCES accounts(id) ON DELETE SET NULL,
                created_at          TEXT    NOT NULL DEFAULT (datetime('now'))
            );

            CREATE TABLE IF NOT EXISTS recurring_rules (
                id                    INTEGER PRIMARY KEY AUTOINCREMENT,
                amount                REAL NOT NULL CHECK(amount >= 0),
                amount_type           TEXT NOT NULL DEFAULT 'fixed'
                                      CHECK(amount_type IN ('fixed','average','last_year')),
                payee                 TEXT NOT NULL,
                category              TEXT NOT NULL DEFAULT '',
                type                  TEXT NOT NULL CHECK(type IN ('income','expense','transfer')),
                account_id            INTEGER NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
                to_account_id         INTEGER REFERENCES accounts(id) ON DELETE SET NULL,
                frequency             TEXT NOT NULL,
                custom_interval       INTEGER,
                custom_unit           TEXT,
                start_date            TEXT NOT NULL,
                next_due_date         TEXT NOT NULL,
                is_active             INTEGER NOT NULL DEFAULT 1,
                total_occurrences     INTEGER,
                occurrences_processed INTEGER NOT NULL DEFAULT 0,
                notes                 TEXT NOT NULL DEFAULT ''
            );

            CREATE TABLE IF NOT EXISTS transactions (
                id                INTEGER PRIMARY KEY AUTOINCREMENT,
                date              TEXT NOT NULL,
                amount            REAL NOT NULL CHECK(amount >= 0),
                payee             TEXT NOT NULL DEFAULT '',
                category          TEXT NOT NULL DEFAULT '',
                type              TEXT NOT NULL CHECK(type IN ('income','expense','transfer')),
                account_id        INTEGER NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
                to_account_id     INTEGER REFERENCES accounts(id) ON DELETE SET NULL,
                recurring_rule_id INTEGER REFERENCES recurring_rules(id) ON DELETE SET NULL,
                notes             TEXT NOT NULL DEFAULT '',
                is_reconciled     INTEGER NOT NULL DEFAULT 0,
                created_at        TEXT NOT NULL DEFAULT (datetime('now'))
            );

            CREATE INDEX IF NOT EXISTS idx_transactions_account_id ON transactions(account_id);
            CREATE INDEX IF NOT EXISTS idx_transactions_date       ON transactions(date);
            CREATE INDEX IF NOT EXISTS idx_transactions_rule       ON transactions(recurring_rule_id);
            CREATE INDEX IF NOT EXISTS idx_recurring_next_due      ON recurring_rules(next_due_date);

            CREATE TABLE IF NOT EXISTS app_settings (
                key   TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
        """)

    def _seed_defaults(self, conn: sqlite3.Connection):
        defaults = [
            ("appearance_mode", "system"),
            ("currency_symbol", "$"),
            ("forecast_period", "6m"),
        ]
        for key, value in defaults:
            conn.execute(
                "INSERT OR IGNORE INTO app_settings(key, value) VALUES (?, ?)",
                (key, value),
            )

        conn.execute(
            "INSERT OR IGNORE INTO accounts(name, account_type, currency) VALUES (?, ?, ?)",
            (DEFAULT_ACCOUNT_NAME, "checking", DEFAULT_CURRENCY),
        )

    @contextmanager
    def transaction(self):
        """Commit everything done inside the block, or roll all of it back."""
        conn = self.get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def get_setting(self, key: str, default: str = "") -> str:
        conn = self.get_connection()
        row = conn.execute(
            "SELECT value FROM app_settings WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else default

    def set_setting(self, key: str, value: str):
        conn = self.get_connection()
        conn.execute(
            "INSERT OR REPLACE INTO app_settings(key, value) VALUES (?, ?)",
            (key, value),
        )
        conn.commit()

    @staticmethod
    def open_in_folder(db_folder: str | None = None) -> "DatabaseManager":
        """Startup factory: opens (and initializes) the DB file, in db_folder if given."""
        path = os.path.join(db_folder, DB_FILE) if db_folder else DB_FILE
        db = DatabaseManager(path)
        db.initialize()
        return db

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None
