import pytest

from services.account_service import AccountService
from services.transaction_service import TransactionService
from utils.app_config import get_db_folder, get_log_level, load_config, set_db_folder
from utils.currency import currency_symbol, format_currency
from utils.errors import ValidationError


@pytest.fixture
def accounts(account_dao):
    return AccountService(account_dao)


@pytest.fixture
def ledger(tx_dao, account_dao):
    return TransactionService(tx_dao, account_dao)


class TestAccountService:
    def test_create_normalizes(self, accounts):
        account = accounts.create("  Main  ", "checking", "usd", 100.0)
        assert account.name == "Main"
        assert account.currency == "USD"

    def test_duplicate_name(self, accounts):
        accounts.create("Main")
        with pytest.raises(ValidationError):
            accounts.create("Main")

    def test_pay_from_only_for_credit(self, accounts):
        main = accounts.create("Main")
        with pytest.raises(ValidationError):
            accounts.create("Savings", "savings", pay_from_account_id=main.id)
        card = accounts.create("Visa", "credit", pay_from_account_id=main.id)
        assert card.pay_from_account_id == main.id

    def test_liquid_ordering(self, accounts):
        accounts.create("Wallet", "cash")
        accounts.create("Visa", "credit")
        accounts.create("Savings", "savings")
        accounts.create("Main", "checking")
        assert [a.name for a in accounts.get_liquid()] == ["Main", "Visa", "Wallet"]

    def test_delete_blocked_by_transactions(self, accounts, ledger):
        main = accounts.create("Main")
        ledger.create(main.id, "expense", 5.0, "2024-01-01", "Coffee")
        with pytest.raises(ValidationError):
            accounts.delete(main.id)


class TestTransactionService:
    def test_balances_as_of(self, accounts, ledger):
        main = accounts.create("Main", initial_balance=100.0)
        savings = accounts.create("Savings", "savings")
        ledger.create(main.id, "income", 50.0, "2024-01-01", "Gift")
        ledger.create(main.id, "transfer", 30.0, "2024-01-02", "Save", to_account_id=savings.id)
        ledger.create(main.id, "expense", 10.0, "2024-01-03", "Coffee")

        assert ledger.get_balances_as_of("2024-01-02") == {main.id: 120.0, savings.id: 30.0}

    def test_rejects_malformed_date(self, accounts, ledger):
        main = accounts.create("Main")
        with pytest.raises(ValidationError):
            ledger.create(main.id, "expense", 5.0, "01/02/2024", "Coffee")

    def test_rejects_negative_amount(self, accounts, ledger):
        main = accounts.create("Main")
        with pytest.raises(ValidationError):
            ledger.create(main.id, "expense", -5.0, "2024-01-02", "Coffee")

    def test_transfer_needs_other_account(self, accounts, ledger):
        main = accounts.create("Main")
        with pytest.raises(ValidationError):
            ledger.create(main.id, "transfer", 5.0, "2024-01-02", "Self", to_account_id=main.id)

    def test_only_flag_and_category_change(self, accounts, ledger):
        main = accounts.create("Main")
        tx = ledger.create(main.id, "expense", 5.0, "2024-01-02", "Coffee")
        ledger.set_reconciled(tx.id, True)
        ledger.update_category(tx.id, "Food")
        stored = ledger.get_for_account(main.id)[0]
        assert stored.is_reconciled is True
        assert stored.category == "Food"
        assert stored.amount == 5.0

    def test_running_balance(self, accounts, ledger):
        main = accounts.create("Main", initial_balance=100.0)
        savings = accounts.create("Savings", "savings")
        ledger.create(main.id, "expense", 10.0, "2024-01-03", "Coffee", is_reconciled=True)
        ledger.create(main.id, "income", 50.0, "2024-01-01", "Gift")
        ledger.create(main.id, "transfer", 30.0, "2024-01-02", "Save", to_account_id=savings.id)

        rows = ledger.get_with_running_balance(main.id)
        assert [(tx.payee, balance) for tx, balance in rows] == [
            ("Gift", 150.0), ("Save", 120.0), ("Coffee", 110.0),
        ]
        incoming = ledger.get_with_running_balance(savings.id)
        assert [balance for _, balance in incoming] == [30.0]

    def test_running_balance_filters_keep_the_walk(self, accounts, ledger):
        main = accounts.create("Main", initial_balance=100.0)
        ledger.create(main.id, "income", 50.0, "2024-01-01", "Gift")
        ledger.create(main.id, "expense", 10.0, "2024-01-03", "Coffee", is_reconciled=True)

        expenses = ledger.get_with_running_balance(main.id, type_filter="expense")
        assert [(tx.payee, balance) for tx, balance in expenses] == [("Coffee", 140.0)]
        pending = ledger.get_with_running_balance(main.id, reconciled_filter="pending")
        assert [tx.payee for tx, _ in pending] == ["Gift"]


class TestAppConfig:
    def test_missing_file(self, tmp_path):
        assert load_config(tmp_path / "nope.json") == {}

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")
        assert load_config(path) == {}

    def test_db_folder_round_trip(self, tmp_path):
        path = tmp_path / "cfg" / "config.json"
        set_db_folder("/data/budget", path)
        assert get_db_folder(path) == "/data/budget"
        set_db_folder(None, path)
        assert get_db_folder(path) is None

    def test_log_level_default(self, tmp_path):
        assert get_log_level(tmp_path / "config.json") == "INFO"


def test_format_currency():
    assert format_currency(1234.5) == "$1,234.50"
    assert format_currency(-300) == "-$300.00"


def test_currency_symbol():
    assert currency_symbol("eur") == "€"
    assert currency_symbol(None) == "$"
    assert format_currency(-5, currency_symbol("CHF")) == "-CHF 5.00"
