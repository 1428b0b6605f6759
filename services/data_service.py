"""Export and import user data (accounts, recurring rules, transactions) as JSON.

Every recurring-rule field round-trips, including the schedule cursor and
occurrence counters, so a restored database resumes exactly where the
exported one stopped. Row ids are remapped on import.
"""
import dataclasses
import json
from collections import Counter
from datetime import datetime

import structlog

from database.db_manager import DatabaseManager
from database.account_dao import AccountDAO
from database.recurring_dao import RecurringDAO
from database.transaction_dao import TransactionDAO
from models.account import ACCOUNT_TYPES, Account
from models.recurring_rule import RecurringRule
from models.transaction import Transaction
from services.recurring_service import validate_rule
from services.transaction_service import validate_entry
from utils.constants import DEFAULT_CURRENCY
from utils.errors import ConfigurationError, ValidationError

logger = structlog.get_logger(__name__)

EXPORT_VERSION = 2

_RULE_FIELDS = (
    "id", "amount", "amount_type", "payee", "category", "type", "account_id",
    "to_account_id", "frequency", "custom_interval", "custom_unit", "start_date",
    "next_due_date", "is_active", "total_occurrences", "occurrences_processed", "notes",
)


class DataService:
    def __init__(
        self,
        db: DatabaseManager,
        account_dao: AccountDAO,
        recurring_dao: RecurringDAO,
        tx_dao: TransactionDAO,
    ):
        self._db = db
        self._account_dao = account_dao
        self._recurring_dao = recurring_dao
        self._tx_dao = tx_dao

    # ── Export ────────────────────────────────────────────────────────────────

    def export_json(self) -> dict:
        """Return a full export dict (caller writes to disk)."""
        return {
            "export_version": EXPORT_VERSION,
            "exported_at": datetime.now().isoformat(),
            "accounts": self._build_accounts(),
            "recurring_rules": self._build_recurring(),
            "transactions": self._build_transactions(),
        }

    def export_to_file(self, path: str) -> None:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.export_json(), f, indent=2)

    # ── Import ────────────────────────────────────────────────────────────────

    def import_json(self, data: dict, mode: str) -> dict:
        """Import from a previously exported JSON dict.

        mode: 'merge' | 'replace'
        Returns stats dict with counts of created entities.
        """
        if mode not in ("merge", "replace"):
            raise ValidationError(f"Invalid import mode: {mode}")
        if not isinstance(data, dict):
            raise ValidationError("Import file must contain a JSON object.")
        return self._import_data(
            accounts=data.get("accounts", []),
            recurring=data.get("recurring_rules", []),
            transactions=data.get("transactions", []),
            mode=mode,
        )

    def import_from_file(self, path: str, mode: str) -> dict:
        with open(path, "r", encoding="utf-8") as f:
            return self.import_json(json.load(f), mode)

    # ── Private builders ──────────────────────────────────────────────────────

    def _build_accounts(self) -> list[dict]:
        return [
            {
                "id": a.id,
                "name": a.name,
                "account_type": a.account_type,
                "currency": a.currency,
                "initial_balance": a.initial_balance,
                "pay_from_account_id": a.pay_from_account_id,
            }
            for a in self._account_dao.get_all()
        ]

    def _build_recurring(self) -> list[dict]:
        return [
            {name: getattr(r, name) for name in _RULE_FIELDS}
            for r in self._recurring_dao.get_all()
        ]

    def _build_transactions(self) -> list[dict]:
        return [
            {
                "id": t.id,
                "date": t.date,
                "amount": t.amount,
                "payee": t.payee,
                "category": t.category,
                "type": t.type,
                "account_id": t.account_id,
                "to_account_id": t.to_account_id,
                "recurring_rule_id": t.recurring_rule_id,
                "notes": t.notes,
                "is_reconciled": t.is_reconciled,
            }
            for t in self._tx_dao.get_all()
        ]

    # ── Private import ────────────────────────────────────────────────────────
    #
    # The whole payload is parsed and checked against file ids before the
    # database is touched, then written (including a replace-mode wipe) in
    # a single unit of work.

    def _import_data(
        self,
        accounts: list[dict],
        recurring: list[dict],
        transactions: list[dict],
        mode: str,
    ) -> dict:
        parsed_accounts = [_parse_account(a) for a in _records(accounts, "accounts")]
        names = [a.name for a in parsed_accounts]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValidationError(f"Duplicate account names: {', '.join(duplicates)}")
        account_ids = {a.id for a in parsed_accounts if a.id is not None}
        for a in parsed_accounts:
            if a.pay_from_account_id is not None and a.pay_from_account_id not in account_ids:
                raise ValidationError(
                    f"Account '{a.name}' pays from unknown account {a.pay_from_account_id}."
                )
        parsed_rules = [
            _parse_rule(r, account_ids) for r in _records(recurring, "recurring_rules")
        ]
        rule_ids = {r.id for r in parsed_rules if r.id is not None}
        parsed_txs = [
            _parse_transaction(t, account_ids, rule_ids)
            for t in _records(transactions, "transactions")
        ]

        try:
            with self._db.transaction():
                stats = self._write(parsed_accounts, parsed_rules, parsed_txs, mode)
        finally:
            self._account_dao.invalidate_cache()

        logger.info("data_imported", mode=mode, **stats)
        return stats

    def _write(
        self,
        accounts: list[Account],
        rules: list[RecurringRule],
        transactions: list[Transaction],
        mode: str,
    ) -> dict:
        stats = {"accounts": 0, "recurring": 0, "transactions": 0}

        if mode == "replace":
            # FK-safe order
            self._tx_dao.delete_all()
            self._recurring_dao.delete_all()
            self._account_dao.delete_all()

        # ── Accounts ──────────────────────────────────────────────────────────
        by_name = {a.name: a.id for a in self._account_dao.get_all()}
        acct_map: dict[int, int] = {}
        for a in accounts:
            if a.name not in by_name:
                created = self._account_dao.insert(
                    a.name, a.account_type, a.currency, a.initial_balance
                )
                by_name[a.name] = created.id
                stats["accounts"] += 1
            if a.id is not None:
                acct_map[a.id] = by_name[a.name]

        # Pay-from links need every account to exist first
        for a in accounts:
            if a.pay_from_account_id is not None and a.id is not None:
                self._account_dao.set_pay_from(
                    acct_map[a.id], acct_map[a.pay_from_account_id]
                )

        # ── Recurring rules ───────────────────────────────────────────────────
        existing_rules = {
            (r.payee, r.account_id, r.start_date): r.id for r in self._recurring_dao.get_all()
        }
        rule_map: dict[int, int] = {}
        for r in rules:
            remapped = dataclasses.replace(
                r,
                id=None,
                account_id=acct_map[r.account_id],
                to_account_id=acct_map.get(r.to_account_id),
            )
            key = (remapped.payee, remapped.account_id, remapped.start_date)
            if mode == "merge" and key in existing_rules:
                new_id = existing_rules[key]
            else:
                new_id = self._recurring_dao.insert(remapped).id
                stats["recurring"] += 1
            if r.id is not None:
                rule_map[r.id] = new_id

        # ── Transactions ──────────────────────────────────────────────────────
        # Merge skips one stored copy per incoming copy, so repeated identical
        # entries in the file survive as long as the database has fewer of them.
        existing_tx: Counter = Counter()
        if mode == "merge":
            existing_tx = Counter(_tx_key(t) for t in self._tx_dao.get_all())

        for t in transactions:
            remapped = dataclasses.replace(
                t,
                id=None,
                account_id=acct_map[t.account_id],
                to_account_id=acct_map.get(t.to_account_id),
                recurring_rule_id=rule_map.get(t.recurring_rule_id),
            )
            key = _tx_key(remapped)
            if existing_tx[key] > 0:
                existing_tx[key] -= 1
                continue
            self._tx_dao.insert(remapped)
            stats["transactions"] += 1

        return stats


# ── Payload parsing ───────────────────────────────────────────────────────────

_REQUIRED_RULE_FIELDS = ("amount", "payee", "type", "account_id", "frequency", "start_date")


def _records(value, section: str) -> list[dict]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, dict) for v in value):
        raise ValidationError(f"'{section}' must be a list of objects.")
    return value


def _number(value, what: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{what} is not a number: {value!r}") from None


def _optional_int(value, what: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value != int(value):
        raise ValidationError(f"{what} is not a whole number: {value!r}")
    return int(value)


def _parse_account(a: dict) -> Account:
    name = a.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(f"Account without a name: {a!r}")
    account_type = a.get("account_type") or "checking"
    if account_type not in ACCOUNT_TYPES:
        raise ValidationError(f"Account '{name}' has invalid type {account_type!r}.")
    currency = a.get("currency") or DEFAULT_CURRENCY
    if not isinstance(currency, str):
        raise ValidationError(f"Account '{name}' has invalid currency {currency!r}.")
    return Account(
        id=_optional_int(a.get("id"), f"Id of '{name}'"),
        name=name.strip(),
        account_type=account_type,
        currency=currency.strip().upper(),
        initial_balance=_number(a.get("initial_balance") or 0.0, f"Balance of '{name}'"),
        pay_from_account_id=_optional_int(a.get("pay_from_account_id"), f"Pay-from of '{name}'"),
    )


def _parse_rule(r: dict, account_ids: set) -> RecurringRule:
    label = f"Recurring rule {r.get('id', '?')}"
    missing = [name for name in _REQUIRED_RULE_FIELDS if r.get(name) in (None, "")]
    if missing:
        raise ValidationError(f"{label} is missing {', '.join(missing)}.")
    account_id = _optional_int(r["account_id"], f"{label} account")
    if account_id not in account_ids:
        raise ValidationError(f"{label} references unknown account {account_id}.")
    to_account_id = _optional_int(r.get("to_account_id"), f"{label} destination")
    if to_account_id is not None and to_account_id not in account_ids:
        raise ValidationError(f"{label} references unknown account {to_account_id}.")

    rule = RecurringRule(
        id=_optional_int(r.get("id"), label),
        amount=_number(r["amount"], f"{label} amount"),
        amount_type=r.get("amount_type") or "fixed",
        payee=str(r["payee"]).strip(),
        category=r.get("category") or "",
        type=r["type"],
        account_id=account_id,
        to_account_id=to_account_id if r["type"] == "transfer" else None,
        frequency=r["frequency"],
        custom_interval=_optional_int(r.get("custom_interval"), f"{label} interval"),
        custom_unit=r.get("custom_unit"),
        start_date=r["start_date"],
        next_due_date=r.get("next_due_date") or r["start_date"],
        is_active=bool(r.get("is_active", True)),
        total_occurrences=_optional_int(r.get("total_occurrences"), f"{label} total"),
        occurrences_processed=_optional_int(r.get("occurrences_processed"), f"{label} count") or 0,
        notes=r.get("notes") or "",
    )
    try:
        validate_rule(rule)
    except (ConfigurationError, ValidationError) as exc:
        raise ValidationError(f"{label}: {exc}") from exc
    return rule


def _parse_transaction(t: dict, account_ids: set, rule_ids: set) -> Transaction:
    label = f"Transaction {t.get('id', '?')}"
    account_id = _optional_int(t.get("account_id"), f"{label} account")
    if account_id not in account_ids:
        raise ValidationError(f"{label} references unknown account {account_id!r}.")
    tx_type = t.get("type")
    amount = _number(t.get("amount"), f"{label} amount")
    try:
        validate_entry(tx_type, amount, t.get("date"))
    except ValidationError as exc:
        raise ValidationError(f"{label}: {exc}") from exc
    to_account_id = (
        _optional_int(t.get("to_account_id"), f"{label} destination")
        if tx_type == "transfer" else None
    )
    if tx_type == "transfer" and (to_account_id not in account_ids or to_account_id == account_id):
        raise ValidationError(f"{label} is a transfer without a valid destination account.")
    rule_id = _optional_int(t.get("recurring_rule_id"), f"{label} rule")
    return Transaction(
        id=t.get("id"),
        date=t["date"],
        amount=amount,
        payee=t.get("payee") or "",
        category=t.get("category") or "",
        type=tx_type,
        account_id=account_id,
        to_account_id=to_account_id,
        recurring_rule_id=rule_id if rule_id in rule_ids else None,
        notes=t.get("notes") or "",
        is_reconciled=bool(t.get("is_reconciled", False)),
    )


def _tx_key(t: Transaction) -> tuple:
    return (t.account_id, t.date, t.type, t.amount, t.payee)
