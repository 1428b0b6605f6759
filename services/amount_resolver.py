"""Smart amount resolution for recurring occurrences.

A rule's ``amount_type`` decides what gets posted:

* ``fixed``     - the rule's own amount.
* ``average``   - mean of past transactions with the same payee and type.
* ``last_year`` - the matching transaction from the same calendar month one
  year earlier.

Both history-based strategies fall back to the rule amount when nothing
matches. How payees are compared is a separate, swappable key function;
``exact_payee`` keeps the historical exact-match behaviour and
``normalized_payee`` ignores surrounding whitespace and case.
"""
from datetime import date
from typing import Callable, Iterable

from models.recurring_rule import RecurringRule
from models.transaction import Transaction
from utils.date_helpers import parse_date
from utils.errors import ConfigurationError

PayeeKey = Callable[[str], str]


def exact_payee(payee: str) -> str:
    return payee or ""


def normalized_payee(payee: str) -> str:
    return (payee or "").strip().casefold()


def matching_history(
    rule: RecurringRule,
    history: Iterable[Transaction],
    payee_key: PayeeKey = exact_payee,
) -> list[Transaction]:
    """Transactions with the rule's payee (under payee_key) and type."""
    target = payee_key(rule.payee)
    return [
        t for t in history
        if t.type == rule.type and payee_key(t.payee) == target
    ]


def resolve_amount(
    rule: RecurringRule,
    target_date: date,
    history: Iterable[Transaction],
    payee_key: PayeeKey = exact_payee,
) -> float:
    amount_type = rule.amount_type or "fixed"
    if amount_type == "fixed":
        return rule.amount

    if amount_type == "average":
        matches = matching_history(rule, history, payee_key)
        if not matches:
            return rule.amount
        return sum(t.amount for t in matches) / len(matches)

    if amount_type == "last_year":
        target_year = target_date.year - 1
        for t in matching_history(rule, history, payee_key):
            d = parse_date(t.date)
            if d.year == target_year and d.month == target_date.month:
                return t.amount
        return rule.amount

    raise ConfigurationError(f"Unknown amount type: {amount_type!r}")
