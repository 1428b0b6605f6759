from datetime import date

from conftest import make_account, make_rule, make_tx
from services.alert_service import AlertConfig, alert_severity, detect_liquidity_alerts

TODAY = date(2024, 3, 1)


def detect(accounts, rules=(), transactions=(), horizon_days=60):
    return detect_liquidity_alerts(AlertConfig(
        accounts=list(accounts), transactions=list(transactions),
        rules=list(rules), today=TODAY, horizon_days=horizon_days,
    ))


def test_single_breach_from_rule():
    alerts = detect(
        [make_account(initial_balance=500.0)],
        [make_rule(amount=800.0, payee="Rent", next_due_date="2024-03-06", start_date="2024-03-06")],
    )
    assert len(alerts) == 1
    alert = alerts[0]
    assert alert.account_id == 1
    assert alert.date == "2024-03-06"
    assert alert.projected_balance == -300.0
    assert alert.trigger_payee == "Rent"
    assert alert.trigger_amount == 800.0
    assert alert.severity == "critical"


def test_only_first_breach_per_account():
    rule = make_rule(amount=800.0, frequency="weekly", next_due_date="2024-03-06", start_date="2024-03-06")
    alerts = detect([make_account(initial_balance=500.0)], [rule])
    assert [a.date for a in alerts] == ["2024-03-06"]


def test_recovery_within_the_day_is_not_a_breach():
    rent = make_rule(id=1, amount=800.0, next_due_date="2024-03-06", start_date="2024-03-06")
    pay = make_rule(
        id=2, amount=1000.0, payee="Salary", type="income",
        next_due_date="2024-03-06", start_date="2024-03-06",
    )
    assert detect([make_account(initial_balance=500.0)], [rent, pay]) == []


def test_already_negative_accounts_are_skipped():
    rule = make_rule(amount=10.0, next_due_date="2024-03-06", start_date="2024-03-06")
    assert detect([make_account(initial_balance=-5.0)], [rule]) == []


def test_non_liquid_accounts_are_ignored():
    savings = make_account(account_type="savings", initial_balance=100.0)
    rule = make_rule(amount=800.0, next_due_date="2024-03-06", start_date="2024-03-06")
    assert detect([savings], [rule]) == []


def test_breach_beyond_horizon_is_not_reported():
    rule = make_rule(amount=800.0, next_due_date="2024-06-01", start_date="2024-06-01")
    assert detect([make_account(initial_balance=500.0)], [rule], horizon_days=30) == []


def test_future_dated_transaction_triggers():
    future = make_tx("2024-03-20", 600.0, payee="Car repair")
    alerts = detect([make_account(initial_balance=500.0)], transactions=[future])
    assert alerts[0].trigger_payee == "Car repair"
    assert alerts[0].severity == "warning"


def test_alerts_are_sorted_by_date():
    accounts = [
        make_account(id=1, initial_balance=100.0),
        make_account(id=2, name="Card", account_type="credit", initial_balance=100.0),
    ]
    rules = [
        make_rule(id=1, account_id=1, amount=200.0, next_due_date="2024-03-20", start_date="2024-03-20"),
        make_rule(id=2, account_id=2, amount=200.0, next_due_date="2024-03-10", start_date="2024-03-10"),
    ]
    assert [a.account_id for a in detect(accounts, rules)] == [2, 1]


def test_severity():
    assert alert_severity(3, -10.0) == "critical"
    assert alert_severity(30, -10.0) == "warning"
    assert alert_severity(30, -1500.0) == "critical"


class TestAlertService:
    def test_dismissals_last_for_the_session(
        self, alert_service, recurring_service, account_dao, session,
    ):
        account = account_dao.create("Checking", "checking", "USD", 500.0)
        recurring_service.create(
            amount=800.0, payee="Rent", category="", type_="expense",
            account_id=account.id, frequency="monthly", start_date="2024-03-06",
        )
        alerts = alert_service.get_alerts(session, TODAY)
        assert len(alerts) == 1

        alert_service.dismiss(session, alerts[0])
        assert alert_service.get_alerts(session, TODAY) == []

        session.reset()
        assert len(alert_service.get_alerts(session, TODAY)) == 1

    def test_cached_until_inputs_change(self, alert_service, tx_dao, account_dao):
        account = account_dao.create("Checking", "checking", "USD", 100.0)
        config = alert_service.build_config(TODAY)
        assert alert_service.detect(config) == []

        tx_dao.create(make_tx("2024-03-02", 150.0, account_id=account.id))
        alerts = alert_service.detect(alert_service.build_config(TODAY))
        assert alerts[0].date == "2024-03-02"
