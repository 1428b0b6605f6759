from datetime import date

import pytest

from conftest import make_rule, make_tx
from services.amount_resolver import normalized_payee, resolve_amount
from utils.errors import ConfigurationError


HISTORY = [
    make_tx("2023-03-10", 80.0, payee="Electric"),
    make_tx("2023-04-10", 95.0, payee="Electric"),
    make_tx("2024-02-10", 120.0, payee="Electric"),
    make_tx("2024-02-11", 999.0, payee="Electric", type="income"),
    make_tx("2024-02-12", 500.0, payee="Water"),
]


def test_fixed_ignores_history():
    rule = make_rule(payee="Electric", amount=100.0, amount_type="fixed")
    assert resolve_amount(rule, date(2024, 3, 10), HISTORY) == 100.0


def test_average_of_same_payee_and_type():
    rule = make_rule(payee="Electric", amount=100.0, amount_type="average")
    assert resolve_amount(rule, date(2024, 3, 10), HISTORY) == pytest.approx((80 + 95 + 120) / 3)


def test_average_falls_back_without_history():
    rule = make_rule(payee="Gas", amount=42.0, amount_type="average")
    assert resolve_amount(rule, date(2024, 3, 10), HISTORY) == 42.0


def test_last_year_same_month():
    rule = make_rule(payee="Electric", amount=100.0, amount_type="last_year")
    assert resolve_amount(rule, date(2024, 4, 10), HISTORY) == 95.0


def test_last_year_falls_back():
    rule = make_rule(payee="Electric", amount=100.0, amount_type="last_year")
    assert resolve_amount(rule, date(2024, 7, 10), HISTORY) == 100.0


def test_exact_payee_is_case_sensitive():
    rule = make_rule(payee="electric ", amount=10.0, amount_type="average")
    assert resolve_amount(rule, date(2024, 3, 10), HISTORY) == 10.0


def test_normalized_payee_ignores_case_and_whitespace():
    rule = make_rule(payee="electric ", amount=10.0, amount_type="average")
    resolved = resolve_amount(rule, date(2024, 3, 10), HISTORY, payee_key=normalized_payee)
    assert resolved == pytest.approx((80 + 95 + 120) / 3)


def test_unknown_amount_type():
    rule = make_rule(amount_type="median")
    with pytest.raises(ConfigurationError):
        resolve_amount(rule, date(2024, 3, 10), HISTORY)
