from datetime import timedelta
from models.transaction import Transaction
from database.transaction_dao import TransactionDAO
from database.account_dao import AccountDAO
from services.simulation import opening_balances, signed_impacts
from utils.constants import TRANSACTION_TYPES
from utils.date_helpers import parse_date
from utils.errors import ValidationError


def validate_entry(type_: str, amount: float, date: str):
    """Field checks every ledger entry must pass, whatever its source."""
    if type_ not in TRANSACTION_TYPES:
        raise ValidationError(f"Invalid type: {type_}")
    if amount < 0:
        raise ValidationError("Amount cannot be negative; the type sets the direction.")
    parse_date(date)


class TransactionService:
    """Ledger entries. Posted transactions are immutable apart from the
    reconciliation flag and the category."""

    def __init__(self, tx_dao: TransactionDAO, account_dao: AccountDAO):
        self._dao = tx_dao
        self._account_dao = account_dao

    def get_all(self) -> list[Transaction]:
        return self._dao.get_all()

    def get_for_account(self, account_id: int) -> list[Transaction]:
        return self._dao.get_by_account(account_id)

    def get_for_rule(self, rule_id: int) -> list[Transaction]:
        return self._dao.get_by_rule(rule_id)

    def get_with_running_balance(
        self,
        account_id: int,
        type_filter: str = "all",
        reconciled_filter: str = "all",
    ) -> list[tuple[Transaction, float]]:
        """Transactions of one account, oldest first, each paired with the
        account balance after it. Filters apply after the balance walk."""
        account = self._account_dao.get_by_id(account_id)
        balance = account.initial_balance if account else 0.0
        rows: list[tuple[Transaction, float]] = []
        for tx in self._dao.get_by_account(account_id):
            for impacted, delta in signed_impacts(tx.type, tx.amount, tx.account_id, tx.to_account_id):
                if impacted == account_id:
                    balance += delta
            rows.append((tx, balance))

        if type_filter != "all":
            rows = [(tx, b) for tx, b in rows if tx.type == type_filter]
        if reconciled_filter == "reconciled":
            rows = [(tx, b) for tx, b in rows if tx.is_reconciled]
        elif reconciled_filter == "pending":
            rows = [(tx, b) for tx, b in rows if not tx.is_reconciled]
        return rows

    def get_balances_as_of(self, as_of_date: str) -> dict[int, float]:
        """{account_id: balance} including transactions dated on or before as_of_date."""
        cutoff = parse_date(as_of_date)
        return opening_balances(
            self._account_dao.get_all(),
            self._dao.get_all(),
            cutoff + timedelta(days=1),
        )

    def create(
        self,
        account_id: int,
        type_: str,
        amount: float,
        date: str,
        payee: str,
        category: str = "",
        to_account_id: int | None = None,
        notes: str = "",
        is_reconciled: bool = False,
    ) -> Transaction:
        self._validate(type_, amount, date, account_id, to_account_id)
        return self._dao.create(Transaction(
            id=None,
            date=date,
            amount=amount,
            payee=payee.strip(),
            category=category,
            type=type_,
            account_id=account_id,
            to_account_id=to_account_id if type_ == "transfer" else None,
            notes=notes,
            is_reconciled=is_reconciled,
        ))

    def set_reconciled(self, tx_id: int, is_reconciled: bool):
        self._dao.set_reconciled(tx_id, is_reconciled)

    def update_category(self, tx_id: int, category: str):
        self._dao.update_category(tx_id, category)

    def delete(self, tx_id: int):
        self._dao.delete(tx_id)

    def _validate(self, type_: str, amount: float, date: str, account_id: int, to_account_id):
        validate_entry(type_, amount, date)
        if self._account_dao.get_by_id(account_id) is None:
            raise ValidationError(f"Account {account_id} does not exist.")
        if type_ == "transfer":
            if to_account_id is None or to_account_id == account_id:
                raise ValidationError("Cannot transfer to the same account.")
            if self._account_dao.get_by_id(to_account_id) is None:
                raise ValidationError(f"Account {to_account_id} does not exist.")
