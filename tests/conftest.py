"""Shared fixtures: an in-memory database wired to real DAOs and services."""

import pytest

from database.db_manager import DatabaseManager
from database.account_dao import AccountDAO
from database.recurring_dao import RecurringDAO
from database.transaction_dao import TransactionDAO
from models.account import Account
from models.recurring_rule import RecurringRule
from models.transaction import Transaction
from services.alert_service import AlertService
from services.forecast_service import ForecastService
from services.recurring_service import RecurringService
from services.session import SessionState


@pytest.fixture
def db():
    manager = DatabaseManager(":memory:")
    manager.initialize(seed_defaults=False)
    yield manager
    manager.close()


@pytest.fixture
def account_dao(db):
    return AccountDAO(db)


@pytest.fixture
def tx_dao(db):
    return TransactionDAO(db)


@pytest.fixture
def recurring_dao(db):
    return RecurringDAO(db)


@pytest.fixture
def recurring_service(db, recurring_dao, tx_dao):
    return RecurringService(db, recurring_dao, tx_dao)


@pytest.fixture
def forecast_service(account_dao, tx_dao, recurring_dao):
    return ForecastService(account_dao, tx_dao, recurring_dao)


@pytest.fixture
def alert_service(account_dao, tx_dao, recurring_dao):
    return AlertService(account_dao, tx_dao, recurring_dao)


@pytest.fixture
def session():
    return SessionState()


@pytest.fixture
def checking(account_dao):
    return account_dao.create("Checking", "checking", "USD", 0.0)


def make_account(id=1, name="Checking", account_type="checking", currency="USD", initial_balance=0.0):
    return Account(
        id=id, name=name, account_type=account_type,
        currency=currency, initial_balance=initial_balance,
    )


def make_rule(**overrides) -> RecurringRule:
    values = dict(
        id=1,
        amount=100.0,
        payee="Rent",
        category="Housing",
        type="expense",
        account_id=1,
        frequency="monthly",
        start_date="2024-01-15",
        next_due_date="2024-01-15",
    )
    values.update(overrides)
    return RecurringRule(**values)


def make_tx(date, amount, payee="Coffee", type="expense", account_id=1, **overrides) -> Transaction:
    values = dict(
        id=None, date=date, amount=amount, payee=payee, category="",
        type=type, account_id=account_id,
    )
    values.update(overrides)
    return Transaction(**values)
