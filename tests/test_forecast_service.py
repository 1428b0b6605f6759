from datetime import date

import pytest

from conftest import make_account, make_rule, make_tx
from models.forecast import ForecastPoint
from models.scenario import Scenario, TentativeTransaction
from services.forecast_service import (
    ForecastConfig, installments_summary, make_scenario, project,
    remaining_committed_spend, summarize_by_month,
)
from utils.errors import ConfigurationError, ValidationError

TODAY = date(2024, 1, 1)

RENT = make_rule(id=1, amount=100.0, payee="Rent", next_due_date="2024-01-10", start_date="2024-01-10")
SALARY = make_rule(
    id=2, amount=500.0, payee="Salary", type="income",
    next_due_date="2024-01-20", start_date="2024-01-20",
)


def by_date(points: list[ForecastPoint]) -> dict[str, ForecastPoint]:
    return {p.date: p for p in points}


def config(**overrides) -> ForecastConfig:
    values = dict(
        accounts=[make_account(initial_balance=1000.0)],
        transactions=[],
        rules=[RENT, SALARY],
        today=TODAY,
        horizon_days=60,
    )
    values.update(overrides)
    return ForecastConfig(**values)


class TestBaseline:
    def test_constant_series_without_activity(self):
        accounts = [
            make_account(id=1, initial_balance=500.0),
            make_account(id=2, name="Card", account_type="credit", initial_balance=-50.0),
            make_account(id=3, name="Savings", account_type="savings", initial_balance=9000.0),
        ]
        points = project(config(accounts=accounts, rules=[], horizon_days=30))
        assert len(points) == 31
        assert {p.balance for p in points} == {450.0}
        assert {p.checking_balance for p in points} == {500.0}

    def test_rule_occurrences_move_the_balance(self):
        points = by_date(project(config()))
        assert points["2024-01-09"].balance == 1000.0
        assert points["2024-01-10"].balance == 900.0
        assert points["2024-01-20"].balance == 1400.0
        assert points["2024-03-01"].balance == 1800.0

    def test_past_window_replays_history(self):
        cfg = config(
            rules=[], past_days=10,
            transactions=[make_tx("2023-12-25", 200.0)],
        )
        points = project(cfg)
        assert points[0].date == "2023-12-22"
        assert points[0].balance == 1000.0
        assert by_date(points)["2023-12-25"].balance == 800.0

    def test_overdue_occurrences_land_on_first_day(self):
        rule = make_rule(next_due_date="2023-12-05", start_date="2023-12-05")
        points = project(config(rules=[rule], horizon_days=5))
        assert points[0].balance == 900.0

    def test_capped_rule_stops_at_cap(self):
        rule = make_rule(
            frequency="weekly", next_due_date="2024-01-02", start_date="2023-12-01",
            total_occurrences=3, occurrences_processed=1,
        )
        points = project(config(rules=[rule]))
        assert points[-1].balance == 800.0

    def test_inactive_rules_are_ignored(self):
        rule = make_rule(next_due_date="2024-01-02", start_date="2024-01-02", is_active=False)
        assert project(config(rules=[rule]))[-1].balance == 1000.0

    def test_transfer_out_of_liquid_set(self):
        accounts = [
            make_account(id=1, initial_balance=1000.0),
            make_account(id=2, name="Savings", account_type="savings"),
        ]
        move = make_tx("2024-01-05", 300.0, type="transfer", to_account_id=2)
        points = by_date(project(config(accounts=accounts, rules=[], transactions=[move])))
        assert points["2024-01-05"].balance == 700.0

    def test_transfer_inside_liquid_set_is_neutral(self):
        accounts = [
            make_account(id=1, initial_balance=1000.0),
            make_account(id=2, name="Card", account_type="credit", initial_balance=-300.0),
        ]
        pay_card = make_tx("2024-01-05", 300.0, type="transfer", to_account_id=2)
        points = by_date(project(config(accounts=accounts, rules=[], transactions=[pay_card])))
        assert points["2024-01-05"].balance == 700.0
        assert points["2024-01-05"].checking_balance == 700.0


class TestTargetAccounts:
    accounts = [
        make_account(id=1, initial_balance=1000.0),
        make_account(id=2, name="Euro", currency="EUR", initial_balance=5000.0),
    ]

    def test_currency_class(self):
        points = project(config(accounts=self.accounts, rules=[], currency="USD"))
        assert points[0].balance == 1000.0

    def test_all_currencies(self):
        points = project(config(accounts=self.accounts, rules=[]))
        assert points[0].balance == 6000.0

    def test_explicit_account_sets_the_class(self):
        points = project(config(accounts=self.accounts, rules=[], account_id=2))
        assert points[0].balance == 5000.0
        assert points[0].checking_balance == 5000.0

    def test_unknown_account(self):
        with pytest.raises(ValidationError):
            project(config(account_id=42))


class TestScenarios:
    def test_full_expense_reduction(self):
        cut = Scenario(id="cut", name="Cut", expense_reduction=100)
        last = project(config(scenarios=[cut]))[-1]
        assert last.balance == 1800.0
        assert last.scenarios["cut"].balance == 2000.0

    def test_reduction_leaves_income_and_transfers(self):
        accounts = [
            make_account(id=1, initial_balance=1000.0),
            make_account(id=2, name="Savings", account_type="savings"),
        ]
        move = make_tx("2024-01-05", 300.0, type="transfer", to_account_id=2)
        cut = Scenario(id="cut", name="Cut", expense_reduction=100)
        last = project(config(accounts=accounts, rules=[SALARY], transactions=[move], scenarios=[cut]))[-1]
        assert last.scenarios["cut"].balance == last.balance

    def test_recurring_override(self):
        cheaper = Scenario(id="move", name="Move", recurring_overrides={1: 40.0})
        last = project(config(scenarios=[cheaper]))[-1]
        assert last.scenarios["move"].balance == 1920.0

    def test_tentative_transaction(self):
        trip = Scenario(
            id="trip", name="Trip",
            tentative_transactions=[TentativeTransaction("2024-01-15", 300.0, "Vacation")],
        )
        points = by_date(project(config(scenarios=[trip])))
        before, on = points["2024-01-14"], points["2024-01-15"]
        assert before.scenarios["trip"].balance == before.balance
        assert on.scenarios["trip"].balance == on.balance - 300.0
        assert on.scenarios["trip"].checking_balance == on.checking_balance - 300.0

    def test_one_time_income_from_the_start(self):
        bonus = Scenario(id="bonus", name="Bonus", one_time_income=250.0)
        points = project(config(scenarios=[bonus]))
        assert all(p.scenarios["bonus"].balance == p.balance + 250.0 for p in points)

    def test_inactive_scenarios_are_dropped(self):
        off = Scenario(id="off", name="Off", is_active=False, one_time_income=1.0)
        assert project(config(scenarios=[off]))[0].scenarios == {}

    def test_baseline_unaffected_by_scenarios(self):
        cut = Scenario(id="cut", name="Cut", expense_reduction=50)
        assert [p.balance for p in project(config(scenarios=[cut]))] == [
            p.balance for p in project(config())
        ]


def test_projection_is_deterministic():
    cfg = config(scenarios=[Scenario(id="cut", name="Cut", expense_reduction=25)])
    assert project(cfg) == project(cfg)


def test_summarize_by_month():
    points = [
        ForecastPoint("2024-01-30", 100.0, 50.0),
        ForecastPoint("2024-01-31", -20.0, 10.0),
        ForecastPoint("2024-02-01", 300.0, 200.0),
    ]
    january, february = summarize_by_month(points)
    assert january.month == "2024-01"
    assert january.closing_balance == -20.0
    assert january.closing_checking == 10.0
    assert january.lowest_balance == -20.0
    assert february.closing_balance == 300.0


def test_installments_summary():
    laptop = make_rule(
        payee="Laptop", amount=100.0, next_due_date="2024-02-05", start_date="2024-01-05",
        total_occurrences=4, occurrences_processed=1,
    )
    summary = installments_summary([laptop, RENT], date(2024, 1, 20))
    assert summary.total_remaining == 300.0
    assert summary.payees == ["Laptop"]
    assert [m["month"] for m in summary.roadmap] == ["2024-02", "2024-03", "2024-04"]
    assert summary.roadmap[0]["by_payee"] == {"Laptop": 100.0}


def test_remaining_committed_spend():
    streaming = make_rule(
        payee="Streaming", category="Subscriptions", amount=10.0, frequency="weekly",
        next_due_date="2024-01-03", start_date="2024-01-03",
    )
    assert remaining_committed_spend("Subscriptions", [streaming, RENT], [], date(2024, 1, 10)) == 40.0


class TestForecastService:
    def test_memoizes_identical_configs(self, forecast_service, checking):
        first = forecast_service.get_projection(TODAY, period="2m")
        assert forecast_service.get_projection(TODAY, period="2m") is first
        assert len(first) == 61

    def test_new_data_invalidates(self, forecast_service, tx_dao, checking):
        first = forecast_service.get_projection(TODAY, period="2m")
        tx_dao.create(make_tx("2024-01-05", 25.0, account_id=checking.id))
        second = forecast_service.get_projection(TODAY, period="2m")
        assert second is not first
        assert second[-1].balance == -25.0

    def test_unknown_period(self, forecast_service):
        with pytest.raises(ConfigurationError):
            forecast_service.get_projection(TODAY, period="5y")

    def test_monthly_summary(self, forecast_service, checking):
        months = forecast_service.get_monthly_summary(TODAY, period="3m")
        assert [m.month for m in months] == ["2024-01", "2024-02", "2024-03"]

    def test_committed_by_category(self, forecast_service, recurring_dao, checking):
        for rule in (
            make_rule(id=None, account_id=checking.id, next_due_date="2024-01-15"),
            make_rule(
                id=None, payee="Streaming", category="Subscriptions", amount=10.0,
                frequency="weekly", account_id=checking.id,
                start_date="2024-01-03", next_due_date="2024-01-03",
            ),
            make_rule(
                id=None, payee="Power", category="Utilities", account_id=checking.id,
                start_date="2024-02-05", next_due_date="2024-02-05",
            ),
            make_rule(
                id=None, payee="Salary", category="Pay", type="income",
                account_id=checking.id, start_date="2024-01-20", next_due_date="2024-01-20",
            ),
        ):
            recurring_dao.create(rule)
        assert forecast_service.get_committed_by_category(date(2024, 1, 10)) == {
            "Housing": 100.0,
            "Subscriptions": 40.0,
        }

    def test_each_scenario_gets_its_own_series(self, forecast_service, checking):
        scenarios = [
            make_scenario("cut", "Cut", "#E91E63", expense_reduction=50),
            make_scenario("bonus", "Bonus", "#00BCD4", one_time_income=250.0),
        ]
        last = forecast_service.get_projection(TODAY, period="1m", scenarios=scenarios)[-1]
        assert set(last.scenarios) == {"cut", "bonus"}
        assert last.scenarios["cut"].balance == 0.0
        assert last.scenarios["bonus"].balance == 250.0


class TestMakeScenario:
    def test_builds_overlay(self):
        trip = TentativeTransaction("2024-03-01", 300.0, "Vacation")
        scenario = make_scenario(
            "s1", "  Lean  ", "#E91E63",
            expense_reduction=20, recurring_overrides={1: 40.0},
            tentative_transactions=[trip],
        )
        assert scenario.name == "Lean"
        assert scenario.is_active
        assert scenario.recurring_overrides == {1: 40.0}
        assert scenario.tentative_transactions == [trip]

    @pytest.mark.parametrize("kwargs", [
        dict(name="   "),
        dict(expense_reduction=150),
        dict(expense_reduction=-5),
        dict(one_time_income=-1.0),
        dict(recurring_overrides={1: -40.0}),
        dict(tentative_transactions=[TentativeTransaction("03/01/2024", 10.0, "Trip")]),
        dict(tentative_transactions=[TentativeTransaction("2024-03-01", 10.0, "Trip", type="transfer")]),
        dict(tentative_transactions=[TentativeTransaction("2024-03-01", -10.0, "Trip")]),
    ])
    def test_rejects(self, kwargs):
        values = dict(name="Lean")
        values.update(kwargs)
        with pytest.raises(ValidationError):
            make_scenario("s1", color="#E91E63", **values)
