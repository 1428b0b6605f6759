"""Day-by-day simulation primitives shared by the forecast and alert services.

Nothing here touches persisted state: rules are walked on private cursors and
balances live in plain dicts owned by the caller.
"""
import dataclasses
import hashlib
import json
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Iterator, Optional

from models.account import Account
from models.recurring_rule import RecurringRule
from models.transaction import Transaction
from services.amount_resolver import PayeeKey, exact_payee, resolve_amount
from utils.date_helpers import next_date, parse_date
from utils.errors import ConfigurationError


@dataclass
class SimEvent:
    """One balance-moving event on a simulated day."""
    date: date              # when it was due; earlier than the day for catch-up occurrences
    payee: str
    amount: float
    type: str
    account_id: int
    to_account_id: Optional[int] = None
    rule_id: Optional[int] = None           # set for simulated rule occurrences


def signed_impacts(
    type_: str, amount: float, account_id: int, to_account_id: int | None
) -> list[tuple[int, float]]:
    """[(account_id, delta)] for a ledger movement."""
    if type_ == "income":
        return [(account_id, amount)]
    if type_ == "expense":
        return [(account_id, -amount)]
    if type_ == "transfer":
        impacts = [(account_id, -amount)]
        if to_account_id is not None:
            impacts.append((to_account_id, amount))
        return impacts
    raise ConfigurationError(f"Unknown transaction type: {type_!r}")


class RuleCursor:
    """Walks a rule's future occurrences without touching the stored rule."""

    def __init__(self, rule: RecurringRule):
        self.rule = rule
        self.cursor = parse_date(rule.next_due_date)
        self.processed = rule.occurrences_processed

    @property
    def exhausted(self) -> bool:
        return self.rule.is_capped and self.processed >= self.rule.total_occurrences

    def due_through(self, day: date) -> list[date]:
        """Occurrence dates on or before `day`, advancing past them."""
        dates = []
        while not self.exhausted and self.cursor <= day:
            dates.append(self.cursor)
            self.processed += 1
            self.cursor = next_date(
                self.cursor, self.rule.frequency,
                self.rule.custom_interval, self.rule.custom_unit,
            )
        return dates


def index_by_date(transactions: Iterable[Transaction]) -> dict[date, list[Transaction]]:
    index: dict[date, list[Transaction]] = {}
    for t in transactions:
        index.setdefault(parse_date(t.date), []).append(t)
    return index


def opening_balances(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
    before: date,
) -> dict[int, float]:
    """Initial balances plus every real transaction dated before `before`."""
    balances = {a.id: a.initial_balance for a in accounts}
    for t in transactions:
        if parse_date(t.date) >= before:
            continue
        for account_id, delta in signed_impacts(t.type, t.amount, t.account_id, t.to_account_id):
            if account_id in balances:
                balances[account_id] += delta
    return balances


def simulate_days(
    transactions: list[Transaction],
    rules: Iterable[RecurringRule],
    start: date,
    end: date,
    payee_key: PayeeKey = exact_payee,
) -> Iterator[tuple[date, list[SimEvent]]]:
    """Yield (day, events) for every day from start to end inclusive.

    Events are the real transactions dated that day followed by rule
    occurrences falling on it. Occurrences still pending before `start`
    are reported on the first day. Smart amounts are resolved against the
    real history only.
    """
    by_date = index_by_date(transactions)
    cursors = [RuleCursor(r) for r in rules if r.is_active]
    day = start
    while day <= end:
        events = [
            SimEvent(
                date=day, payee=t.payee, amount=t.amount, type=t.type,
                account_id=t.account_id, to_account_id=t.to_account_id,
            )
            for t in by_date.get(day, [])
        ]
        for rc in cursors:
            for due in rc.due_through(day):
                rule = rc.rule
                events.append(SimEvent(
                    date=due,
                    payee=rule.payee,
                    amount=resolve_amount(rule, due, transactions, payee_key),
                    type=rule.type,
                    account_id=rule.account_id,
                    to_account_id=rule.to_account_id if rule.type == "transfer" else None,
                    rule_id=rule.id,
                ))
        yield day, events
        day += timedelta(days=1)


def input_fingerprint(config) -> str:
    """Stable hash of a config dataclass, used as a memoization key."""
    payload = json.dumps(dataclasses.asdict(config), sort_keys=True, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
