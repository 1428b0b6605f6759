import dataclasses
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

import structlog

from database.db_manager import DatabaseManager
from database.recurring_dao import RecurringDAO
from database.transaction_dao import TransactionDAO
from models.recurring_rule import RecurringRule
from models.transaction import Transaction
from services.amount_resolver import PayeeKey, exact_payee, resolve_amount
from services.session import SessionState
from utils.constants import (
    AMOUNT_TYPES, CUSTOM_UNITS, FREQUENCIES, MAX_OCCURRENCES_PER_RUN, TRANSACTION_TYPES,
)
from utils.date_helpers import format_date, next_date, parse_date
from utils.errors import (
    ConfigurationError, ProcessorBusyError, RecurringCommitError, StaleRuleError,
    ValidationError,
)

logger = structlog.get_logger(__name__)


@dataclass
class RuleOccurrences:
    """Postings generated for one rule plus its advanced copy: one commit unit."""
    original: RecurringRule
    rule: RecurringRule
    postings: list[Transaction] = field(default_factory=list)


@dataclass
class OccurrenceBatch:
    units: list[RuleOccurrences] = field(default_factory=list)

    @property
    def postings(self) -> list[Transaction]:
        return [p for unit in self.units for p in unit.postings]

    @property
    def updated_rules(self) -> list[RecurringRule]:
        return [unit.rule for unit in self.units]


@dataclass
class SingleOccurrence:
    posting: Transaction
    rule: RecurringRule


def _post_occurrence(
    rule: RecurringRule,
    due: date,
    history: list[Transaction],
    payee_key: PayeeKey,
) -> Transaction:
    """Build the posting for `due` and advance rule (a private copy) past it."""
    posting = Transaction(
        id=None,
        date=format_date(due),
        amount=resolve_amount(rule, due, history, payee_key),
        payee=rule.payee,
        category=rule.category,
        type=rule.type,
        account_id=rule.account_id,
        to_account_id=rule.to_account_id if rule.type == "transfer" else None,
        recurring_rule_id=rule.id,
        notes=rule.notes,
    )
    rule.occurrences_processed += 1
    rule.next_due_date = format_date(
        next_date(due, rule.frequency, rule.custom_interval, rule.custom_unit)
    )
    if rule.cap_reached:
        rule.is_active = False
    return posting


def run_due_occurrences(
    rules: Iterable[RecurringRule],
    transactions: Iterable[Transaction],
    today: date,
    max_per_rule: int = MAX_OCCURRENCES_PER_RUN,
    payee_key: PayeeKey = exact_payee,
) -> OccurrenceBatch:
    """Generate every posting due on or before `today`.

    Input rules are left untouched; each unit carries an advanced copy.
    Amount resolution sees the given history plus postings generated
    earlier in the same batch. At most `max_per_rule` postings are made per
    rule; anything beyond stays due for the next run.
    """
    today = parse_date(today)
    history = list(transactions)
    batch = OccurrenceBatch()

    for original in rules:
        if not original.is_active:
            continue
        rule = dataclasses.replace(original)
        if rule.cap_reached:
            # Cap lowered below the counter by an edit: retire without posting
            rule.is_active = False
            batch.units.append(RuleOccurrences(original, rule))
            continue

        postings: list[Transaction] = []
        due = parse_date(rule.next_due_date)
        while due <= today and rule.is_active and len(postings) < max_per_rule:
            posting = _post_occurrence(rule, due, history, payee_key)
            postings.append(posting)
            history.append(posting)
            due = parse_date(rule.next_due_date)

        if postings:
            batch.units.append(RuleOccurrences(original, rule, postings))
            if len(postings) == max_per_rule and due <= today and rule.is_active:
                logger.warning(
                    "recurring_catchup_deferred",
                    rule_id=rule.id, payee=rule.payee, next_due=rule.next_due_date,
                )

    return batch


def post_single_occurrence(
    rule: RecurringRule,
    transactions: Iterable[Transaction],
    payee_key: PayeeKey = exact_payee,
) -> SingleOccurrence:
    """Post the occurrence at the rule's cursor, due or not."""
    if rule.cap_reached:
        raise ValidationError(
            f"Recurring rule {rule.id} has already posted all "
            f"{rule.total_occurrences} occurrences."
        )
    updated = dataclasses.replace(rule)
    posting = _post_occurrence(
        updated, parse_date(updated.next_due_date), list(transactions), payee_key
    )
    return SingleOccurrence(posting=posting, rule=updated)


def validate_rule(rule: RecurringRule):
    """Reject a rule the processor could not walk.

    Unknown frequencies, custom units and amount types raise
    ConfigurationError; everything else raises ValidationError.
    """
    if not rule.payee:
        raise ValidationError("Payee cannot be empty.")
    if rule.type not in TRANSACTION_TYPES:
        raise ValidationError(f"Invalid type: {rule.type}")
    if rule.amount < 0:
        raise ValidationError("Amount cannot be negative.")
    if rule.type == "transfer":
        if rule.to_account_id is None or rule.to_account_id == rule.account_id:
            raise ValidationError("A transfer needs a different destination account.")
    if rule.frequency not in FREQUENCIES:
        raise ConfigurationError(f"Unknown frequency: {rule.frequency!r}")
    if rule.frequency == "custom" and rule.custom_unit not in (None, *CUSTOM_UNITS):
        raise ConfigurationError(f"Unknown custom unit: {rule.custom_unit!r}")
    if rule.amount_type not in AMOUNT_TYPES:
        raise ConfigurationError(f"Unknown amount type: {rule.amount_type!r}")
    if rule.occurrences_processed < 0:
        raise ValidationError("Processed occurrences cannot be negative.")
    if rule.is_capped and rule.occurrences_processed > rule.total_occurrences:
        raise ValidationError(
            f"Total occurrences ({rule.total_occurrences}) cannot be below the "
            f"{rule.occurrences_processed} already posted."
        )
    start = parse_date(rule.start_date)
    if parse_date(rule.next_due_date) < start:
        raise ValidationError("Next due date cannot be before the start date.")


class RecurringService:
    def __init__(
        self,
        db: DatabaseManager,
        recurring_dao: RecurringDAO,
        tx_dao: TransactionDAO,
        payee_key: PayeeKey = exact_payee,
        max_per_rule: int = MAX_OCCURRENCES_PER_RUN,
    ):
        self._db = db
        self._dao = recurring_dao
        self._tx_dao = tx_dao
        self._payee_key = payee_key
        self._max_per_rule = max_per_rule

    def get_all(self) -> list[RecurringRule]:
        return self._dao.get_all()

    def get_active(self) -> list[RecurringRule]:
        return self._dao.get_active()

    def get_by_id(self, rule_id: int) -> RecurringRule | None:
        return self._dao.get_by_id(rule_id)

    def create(
        self,
        amount: float,
        payee: str,
        category: str,
        type_: str,
        account_id: int,
        frequency: str,
        start_date: str,
        amount_type: str = "fixed",
        to_account_id: int | None = None,
        custom_interval: int | None = None,
        custom_unit: str | None = None,
        total_occurrences: int | None = None,
        notes: str = "",
        next_due_date: str | None = None,
    ) -> RecurringRule:
        rule = RecurringRule(
            id=None,
            amount=amount,
            amount_type=amount_type,
            payee=payee.strip(),
            category=category,
            type=type_,
            account_id=account_id,
            to_account_id=to_account_id,
            frequency=frequency,
            custom_interval=custom_interval,
            custom_unit=custom_unit,
            start_date=start_date,
            next_due_date=next_due_date or start_date,
            total_occurrences=total_occurrences,
            notes=notes,
        )
        validate_rule(rule)
        return self._dao.create(rule)

    def update(
        self,
        rule_id: int,
        amount: float,
        payee: str,
        category: str,
        type_: str,
        account_id: int,
        frequency: str,
        start_date: str,
        amount_type: str = "fixed",
        to_account_id: int | None = None,
        custom_interval: int | None = None,
        custom_unit: str | None = None,
        total_occurrences: int | None = None,
        notes: str = "",
        next_due_date: str | None = None,
        is_active: bool = True,
    ) -> RecurringRule:
        """Edit a rule's template. Passing next_due_date re-baselines the schedule."""
        current = self._dao.get_by_id(rule_id)
        if current is None:
            raise ValidationError(f"Recurring rule {rule_id} does not exist.")
        rule = dataclasses.replace(
            current,
            amount=amount,
            amount_type=amount_type,
            payee=payee.strip(),
            category=category,
            type=type_,
            account_id=account_id,
            to_account_id=to_account_id,
            frequency=frequency,
            custom_interval=custom_interval,
            custom_unit=custom_unit,
            start_date=start_date,
            next_due_date=next_due_date or current.next_due_date,
            total_occurrences=total_occurrences,
            notes=notes,
            is_active=is_active,
        )
        validate_rule(rule)
        if rule.cap_reached:
            rule.is_active = False
        return self._dao.update(rule)

    def set_active(self, rule_id: int, is_active: bool):
        self._dao.set_active(rule_id, is_active)

    def delete(self, rule_id: int):
        self._dao.delete(rule_id)

    # ── Processing ───────────────────────────────────────────────────────────

    def apply_on_startup(self, session: SessionState, today: date) -> list[Transaction]:
        """Automatic run after data load; at most once per session."""
        if session.auto_run_done:
            return []
        session.auto_run_done = True
        return self.apply_due_rules(session, today)

    def apply_due_rules(self, session: SessionState, today: date) -> list[Transaction]:
        """
        Post every due occurrence up to `today` and commit rule by rule.
        Returns the committed transactions. If any rule fails to commit,
        the others still commit and RecurringCommitError is raised afterwards.
        """
        with self._exclusive(session):
            batch = run_due_occurrences(
                self._dao.get_active(), self._tx_dao.get_all(), today,
                max_per_rule=self._max_per_rule, payee_key=self._payee_key,
            )
            committed: list[Transaction] = []
            failures: list[tuple[RecurringRule, Exception]] = []
            for unit in batch.units:
                try:
                    committed.extend(self._commit_unit(unit))
                except (sqlite3.Error, StaleRuleError) as exc:
                    logger.error(
                        "recurring_commit_failed",
                        rule_id=unit.rule.id, payee=unit.rule.payee, error=str(exc),
                    )
                    failures.append((unit.rule, exc))

            logger.info(
                "recurring_rules_applied",
                today=format_date(parse_date(today)),
                postings=len(committed),
                rules=len(batch.units) - len(failures),
                failed=len(failures),
            )
            if failures:
                raise RecurringCommitError(committed, failures)
            return committed

    def post_now(self, session: SessionState, rule_id: int) -> Transaction:
        """Manually post the rule's next occurrence regardless of its due date."""
        with self._exclusive(session):
            rule = self._dao.get_by_id(rule_id)
            if rule is None:
                raise ValidationError(f"Recurring rule {rule_id} does not exist.")
            single = post_single_occurrence(rule, self._tx_dao.get_all(), self._payee_key)
            created = self._commit_unit(RuleOccurrences(rule, single.rule, [single.posting]))
            logger.info(
                "recurring_rule_posted",
                rule_id=rule_id, date=single.posting.date, amount=single.posting.amount,
            )
            return created[0]

    @contextmanager
    def _exclusive(self, session: SessionState):
        if session.processing:
            raise ProcessorBusyError("Recurring processing is already in progress.")
        session.processing = True
        try:
            yield
        finally:
            session.processing = False

    def _commit_unit(self, unit: RuleOccurrences) -> list[Transaction]:
        """Write one rule's postings and cursor advance atomically."""
        with self._db.transaction():
            created = [self._tx_dao.insert(p) for p in unit.postings]
            self._dao.advance_cursor(
                unit.rule,
                expected_next_due=unit.original.next_due_date,
                expected_processed=unit.original.occurrences_processed,
            )
        return created
