from typing import Optional
from database.db_manager import DatabaseManager
from models.transaction import Transaction


class TransactionDAO:
    def __init__(self, db: DatabaseManager):
        self._db = db

    def _row_to_model(self, row) -> Transaction:
        return Transaction(
            id=row["id"],
            date=row["date"],
            amount=row["amount"],
            payee=row["payee"],
            category=row["category"],
            type=row["type"],
            account_id=row["account_id"],
            to_account_id=row["to_account_id"],
            recurring_rule_id=row["recurring_rule_id"],
            notes=row["notes"],
            is_reconciled=bool(row["is_reconciled"]),
            created_at=row["created_at"],
        )

    def get_all(self) -> list[Transaction]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM transactions ORDER BY date ASC, id ASC"
        ).fetchall()
        return [self._row_to_model(r) for r in rows]

    def get_by_account(self, account_id: int) -> list[Transaction]:
        conn = self._db.get_connection()
        rows = conn.execute(
            """SELECT * FROM transactions
               WHERE account_id = ? OR to_account_id = ?
               ORDER BY date ASC, id ASC""",
            (account_id, account_id),
        ).fetchall()
        return [self._row_to_model(r) for r in rows]

    def get_by_rule(self, rule_id: int) -> list[Transaction]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM transactions WHERE recurring_rule_id = ? ORDER BY date ASC, id ASC",
            (rule_id,),
        ).fetchall()
        return [self._row_to_model(r) for r in rows]

    def get_by_id(self, tx_id: int) -> Optional[Transaction]:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM transactions WHERE id = ?", (tx_id,)
        ).fetchone()
        return self._row_to_model(row) if row else None

    def insert(self, tx: Transaction) -> Transaction:
        """Insert without committing; the caller owns the unit of work."""
        conn = self._db.get_connection()
        cursor = conn.execute(
            """INSERT INTO transactions
               (date, amount, payee, category, type, account_id, to_account_id,
                recurring_rule_id, notes, is_reconciled)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                tx.date, tx.amount, tx.payee, tx.category, tx.type,
                tx.account_id, tx.to_account_id, tx.recurring_rule_id,
                tx.notes, 1 if tx.is_reconciled else 0,
            ),
        )
        return self.get_by_id(cursor.lastrowid)

    def create(self, tx: Transaction) -> Transaction:
        created = self.insert(tx)
        self._db.get_connection().commit()
        return created

    def set_reconciled(self, tx_id: int, is_reconciled: bool):
        conn = self._db.get_connection()
        conn.execute(
            "UPDATE transactions SET is_reconciled = ? WHERE id = ?",
            (1 if is_reconciled else 0, tx_id),
        )
        conn.commit()

    def update_category(self, tx_id: int, category: str):
        conn = self._db.get_connection()
        conn.execute(
            "UPDATE transactions SET category = ? WHERE id = ?",
            (category, tx_id),
        )
        conn.commit()

    def delete(self, tx_id: int):
        conn = self._db.get_connection()
        conn.execute("DELETE FROM transactions WHERE id = ?", (tx_id,))
        conn.commit()

    def delete_all(self):
        """Remove every transaction without committing."""
        self._db.get_connection().execute("DELETE FROM transactions")
