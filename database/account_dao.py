from typing import Optional
from database.db_manager import DatabaseManager
from models.account import Account


class AccountDAO:
    def __init__(self, db: DatabaseManager):
        self._db = db
        self._all_cache: list | None = None

    def invalidate_cache(self):
        self._all_cache = None

    def _row_to_model(self, row) -> Account:
        return Account(
            id=row["id"],
            name=row["name"],
            account_type=row["account_type"],
            currency=row["currency"],
            initial_balance=row["initial_balance"],
            pay_from_account_id=row["pay_from_account_id"],
            created_at=row["created_at"],
        )

    def get_all(self) -> list[Account]:
        if self._all_cache is None:
            conn = self._db.get_connection()
            rows = conn.execute(
                "SELECT * FROM accounts ORDER BY name"
            ).fetchall()
            self._all_cache = [self._row_to_model(r) for r in rows]
        return list(self._all_cache)

    def get_by_id(self, account_id: int) -> Optional[Account]:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM accounts WHERE id = ?", (account_id,)
        ).fetchone()
        return self._row_to_model(row) if row else None

    def get_by_name(self, name: str) -> Optional[Account]:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM accounts WHERE name = ?", (name,)
        ).fetchone()
        return self._row_to_model(row) if row else None

    def insert(
        self,
        name: str,
        account_type: str = "checking",
        currency: str = "USD",
        initial_balance: float = 0.0,
        pay_from_account_id: int | None = None,
    ) -> Account:
        """Insert without committing; the caller owns the unit of work."""
        conn = self._db.get_connection()
        cursor = conn.execute(
            """INSERT INTO accounts(name, account_type, currency, initial_balance, pay_from_account_id)
               VALUES (?, ?, ?, ?, ?)""",
            (name, account_type, currency, initial_balance, pay_from_account_id),
        )
        self.invalidate_cache()
        return self.get_by_id(cursor.lastrowid)

    def create(
        self,
        name: str,
        account_type: str = "checking",
        currency: str = "USD",
        initial_balance: float = 0.0,
        pay_from_account_id: int | None = None,
    ) -> Account:
        created = self.insert(name, account_type, currency, initial_balance, pay_from_account_id)
        self._db.get_connection().commit()
        return created

    def set_pay_from(self, account_id: int, pay_from_account_id: int | None):
        """Relink a credit card's settling account without committing."""
        conn = self._db.get_connection()
        conn.execute(
            "UPDATE accounts SET pay_from_account_id = ? WHERE id = ?",
            (pay_from_account_id, account_id),
        )
        self.invalidate_cache()

    def update(
        self,
        account_id: int,
        name: str,
        account_type: str = "checking",
        currency: str = "USD",
        initial_balance: float = 0.0,
        pay_from_account_id: int | None = None,
    ) -> Account:
        conn = self._db.get_connection()
        conn.execute(
            """UPDATE accounts
               SET name = ?, account_type = ?, currency = ?, initial_balance = ?,
                   pay_from_account_id = ?
               WHERE id = ?""",
            (name, account_type, currency, initial_balance, pay_from_account_id, account_id),
        )
        conn.commit()
        self.invalidate_cache()
        return self.get_by_id(account_id)

    def delete(self, account_id: int):
        conn = self._db.get_connection()
        conn.execute("DELETE FROM accounts WHERE id = ?", (account_id,))
        conn.commit()
        self.invalidate_cache()

    def has_transactions(self, account_id: int) -> bool:
        conn = self._db.get_connection()
        row = conn.execute(
            """SELECT COUNT(*) AS cnt FROM transactions
               WHERE account_id = ? OR to_account_id = ?""",
            (account_id, account_id),
        ).fetchone()
        return row["cnt"] > 0

    def delete_all(self):
        """Remove every account without committing."""
        self._db.get_connection().execute("DELETE FROM accounts")
        self.invalidate_cache()
