from models.account import Account, ACCOUNT_TYPES
from database.account_dao import AccountDAO
from utils.errors import ValidationError


class AccountService:
    def __init__(self, account_dao: AccountDAO):
        self._dao = account_dao

    def get_all(self) -> list[Account]:
        return self._dao.get_all()

    def get_by_id(self, account_id: int) -> Account | None:
        return self._dao.get_by_id(account_id)

    def get_liquid(self) -> list[Account]:
        """Checking first, then credit cards, then cash; alphabetical within a type."""
        order = {"checking": 0, "credit": 1, "cash": 2}
        return sorted(
            (a for a in self._dao.get_all() if a.is_liquid),
            key=lambda a: (order[a.account_type], a.name.lower()),
        )

    def create(
        self,
        name: str,
        account_type: str = "checking",
        currency: str = "USD",
        initial_balance: float = 0.0,
        pay_from_account_id: int | None = None,
    ) -> Account:
        name = name.strip()
        if not name:
            raise ValidationError("Account name cannot be empty.")
        if self._dao.get_by_name(name):
            raise ValidationError(f"An account named '{name}' already exists.")
        self._validate(account_type, currency, pay_from_account_id)
        return self._dao.create(
            name, account_type, currency.strip().upper(), initial_balance, pay_from_account_id
        )

    def update(
        self,
        account_id: int,
        name: str,
        account_type: str = "checking",
        currency: str = "USD",
        initial_balance: float = 0.0,
        pay_from_account_id: int | None = None,
    ) -> Account:
        name = name.strip()
        if not name:
            raise ValidationError("Account name cannot be empty.")
        existing = self._dao.get_by_name(name)
        if existing and existing.id != account_id:
            raise ValidationError(f"An account named '{name}' already exists.")
        if pay_from_account_id == account_id:
            raise ValidationError("An account cannot pay itself.")
        self._validate(account_type, currency, pay_from_account_id)
        return self._dao.update(
            account_id, name, account_type, currency.strip().upper(),
            initial_balance, pay_from_account_id,
        )

    def delete(self, account_id: int):
        if self._dao.has_transactions(account_id):
            raise ValidationError(
                "Cannot delete an account with existing transactions. "
                "Remove all transactions first."
            )
        self._dao.delete(account_id)

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _validate(self, account_type: str, currency: str, pay_from_account_id: int | None):
        if account_type not in ACCOUNT_TYPES:
            raise ValidationError(
                f"Invalid account type '{account_type}'. "
                f"Must be one of: {', '.join(ACCOUNT_TYPES)}."
            )
        if not currency or not currency.strip():
            raise ValidationError("Currency cannot be empty.")
        if pay_from_account_id is not None:
            if account_type != "credit":
                raise ValidationError("Only credit cards have a pay-from account.")
            if self._dao.get_by_id(pay_from_account_id) is None:
                raise ValidationError(f"Account {pay_from_account_id} does not exist.")
