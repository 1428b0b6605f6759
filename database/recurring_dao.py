from typing import Optional
from database.db_manager import DatabaseManager
from models.recurring_rule import RecurringRule
from utils.errors import StaleRuleError

_COLUMNS = (
    "amount", "amount_type", "payee", "category", "type", "account_id",
    "to_account_id", "frequency", "custom_interval", "custom_unit",
    "start_date", "next_due_date", "is_active", "total_occurrences",
    "occurrences_processed", "notes",
)


class RecurringDAO:
    def __init__(self, db: DatabaseManager):
        self._db = db

    def _row_to_model(self, row) -> RecurringRule:
        return RecurringRule(
            id=row["id"],
            amount=row["amount"],
            amount_type=row["amount_type"],
            payee=row["payee"],
            category=row["category"],
            type=row["type"],
            account_id=row["account_id"],
            to_account_id=row["to_account_id"],
            frequency=row["frequency"],
            custom_interval=row["custom_interval"],
            custom_unit=row["custom_unit"],
            start_date=row["start_date"],
            next_due_date=row["next_due_date"],
            is_active=bool(row["is_active"]),
            total_occurrences=row["total_occurrences"],
            occurrences_processed=row["occurrences_processed"],
            notes=row["notes"],
        )

    @staticmethod
    def _values(rule: RecurringRule) -> tuple:
        return (
            rule.amount, rule.amount_type, rule.payee, rule.category, rule.type,
            rule.account_id, rule.to_account_id, rule.frequency,
            rule.custom_interval, rule.custom_unit, rule.start_date,
            rule.next_due_date, 1 if rule.is_active else 0,
            rule.total_occurrences, rule.occurrences_processed, rule.notes,
        )

    def get_all(self) -> list[RecurringRule]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM recurring_rules ORDER BY next_due_date, id"
        ).fetchall()
        return [self._row_to_model(r) for r in rows]

    def get_active(self) -> list[RecurringRule]:
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM recurring_rules WHERE is_active = 1 ORDER BY next_due_date, id"
        ).fetchall()
        return [self._row_to_model(r) for r in rows]

    def get_by_id(self, rule_id: int) -> Optional[RecurringRule]:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM recurring_rules WHERE id = ?", (rule_id,)
        ).fetchone()
        return self._row_to_model(row) if row else None

    def insert(self, rule: RecurringRule) -> RecurringRule:
        """Insert without committing; the caller owns the unit of work."""
        conn = self._db.get_connection()
        placeholders = ", ".join("?" * len(_COLUMNS))
        cursor = conn.execute(
            f"INSERT INTO recurring_rules ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
            self._values(rule),
        )
        return self.get_by_id(cursor.lastrowid)

    def create(self, rule: RecurringRule) -> RecurringRule:
        created = self.insert(rule)
        self._db.get_connection().commit()
        return created

    def update(self, rule: RecurringRule) -> RecurringRule:
        conn = self._db.get_connection()
        assignments = ", ".join(f"{col}=?" for col in _COLUMNS)
        conn.execute(
            f"UPDATE recurring_rules SET {assignments} WHERE id=?",
            self._values(rule) + (rule.id,),
        )
        conn.commit()
        return self.get_by_id(rule.id)

    def advance_cursor(
        self,
        rule: RecurringRule,
        expected_next_due: str,
        expected_processed: int,
    ):
        """Write the rule's cursor, counter and active flag without committing.

        The update only applies if the stored cursor still matches what the
        caller loaded; otherwise StaleRuleError is raised so a concurrent
        trigger cannot post the same occurrences twice.
        """
        conn = self._db.get_connection()
        cursor = conn.execute(
            """UPDATE recurring_rules
               SET next_due_date = ?, occurrences_processed = ?, is_active = ?
               WHERE id = ? AND next_due_date = ? AND occurrences_processed = ?""",
            (
                rule.next_due_date, rule.occurrences_processed,
                1 if rule.is_active else 0,
                rule.id, expected_next_due, expected_processed,
            ),
        )
        if cursor.rowcount != 1:
            raise StaleRuleError(rule.id)

    def set_active(self, rule_id: int, is_active: bool):
        conn = self._db.get_connection()
        conn.execute(
            "UPDATE recurring_rules SET is_active = ? WHERE id = ?",
            (1 if is_active else 0, rule_id),
        )
        conn.commit()

    def delete(self, rule_id: int):
        conn = self._db.get_connection()
        conn.execute("DELETE FROM recurring_rules WHERE id = ?", (rule_id,))
        conn.commit()

    def delete_all(self):
        """Remove every rule without committing."""
        self._db.get_connection().execute("DELETE FROM recurring_rules")
