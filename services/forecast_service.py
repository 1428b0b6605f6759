from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Optional

import structlog

from database.account_dao import AccountDAO
from database.recurring_dao import RecurringDAO
from database.transaction_dao import TransactionDAO
from models.account import Account
from models.forecast import ForecastPoint, InstallmentSummary, MonthSummary, ScenarioPoint
from models.recurring_rule import RecurringRule
from models.scenario import Scenario, TentativeTransaction
from models.transaction import Transaction
from services.amount_resolver import PayeeKey, exact_payee, resolve_amount
from services.simulation import (
    RuleCursor, SimEvent, input_fingerprint, opening_balances, signed_impacts, simulate_days,
)
from utils.constants import (
    DEFAULT_FORECAST_PERIOD, FORECAST_CACHE_SIZE, FORECAST_PERIODS, INSTALLMENT_ROADMAP_MONTHS,
)
from utils.date_helpers import add_months, format_date, format_month, month_bounds, parse_date
from utils.errors import ConfigurationError, ValidationError

logger = structlog.get_logger(__name__)


@dataclass
class ForecastConfig:
    accounts: list[Account]
    transactions: list[Transaction]
    rules: list[RecurringRule]
    today: date
    account_id: Optional[int] = None    # explicit target; None = liquid accounts
    currency: Optional[str] = None      # liquidity class filter; None = every currency
    past_days: int = 0
    horizon_days: int = FORECAST_PERIODS[DEFAULT_FORECAST_PERIOD]
    scenarios: list[Scenario] = field(default_factory=list)

    def _class_currency(self) -> Optional[str]:
        if self.currency is not None:
            return self.currency
        if self.account_id is not None:
            return self._explicit_account().currency
        return None

    def _explicit_account(self) -> Account:
        for a in self.accounts:
            if a.id == self.account_id:
                return a
        raise ValidationError(f"Account {self.account_id} does not exist.")

    def _currency_class(self) -> list[Account]:
        currency = self._class_currency()
        return [a for a in self.accounts if currency is None or a.currency == currency]

    def target_account_ids(self) -> set[int]:
        if self.account_id is not None:
            return {self._explicit_account().id}
        return {a.id for a in self._currency_class() if a.is_liquid}

    def checking_account_ids(self) -> set[int]:
        return {a.id for a in self._currency_class() if a.is_checking}


@dataclass
class _Track:
    balance: float
    checking_balance: float

    def apply(self, event: SimEvent, amount: float, targets: set[int], checking: set[int]):
        for account_id, delta in signed_impacts(
            event.type, amount, event.account_id, event.to_account_id
        ):
            if account_id in targets:
                self.balance += delta
            if account_id in checking:
                self.checking_balance += delta


def _scenario_amount(scenario: Scenario, event: SimEvent) -> float:
    amount = event.amount
    if event.rule_id is not None and event.rule_id in scenario.recurring_overrides:
        amount = scenario.recurring_overrides[event.rule_id]
    if event.type == "expense":
        amount *= 1 - scenario.expense_reduction / 100
    return amount


def project(config: ForecastConfig, payee_key: PayeeKey = exact_payee) -> list[ForecastPoint]:
    """
    Simulate balances day by day from today - past_days through
    today + horizon_days. The baseline track applies real transactions and
    simulated rule occurrences; each active scenario runs the same events
    through its overlay (expense reduction, rule overrides, one-time income
    on the first day, tentative postings on their date).
    """
    targets = config.target_account_ids()
    checking = config.checking_account_ids()
    today = parse_date(config.today)
    start = today - timedelta(days=max(0, config.past_days))
    end = today + timedelta(days=max(0, config.horizon_days))

    seed = opening_balances(config.accounts, config.transactions, start)
    net = sum(seed.get(a, 0.0) for a in targets)
    chk = sum(seed.get(a, 0.0) for a in checking)

    baseline = _Track(net, chk)
    scenarios = [s for s in config.scenarios if s.is_active]
    tracks = {
        s.id: _Track(net + s.one_time_income, chk + s.one_time_income)
        for s in scenarios
    }
    tentative: dict[str, dict[date, list]] = {}
    for s in scenarios:
        by_day: dict[date, list] = {}
        for t in s.tentative_transactions:
            by_day.setdefault(parse_date(t.date), []).append(t)
        tentative[s.id] = by_day

    points: list[ForecastPoint] = []
    for day, events in simulate_days(list(config.transactions), config.rules, start, end, payee_key):
        for event in events:
            baseline.apply(event, event.amount, targets, checking)
            for s in scenarios:
                tracks[s.id].apply(event, _scenario_amount(s, event), targets, checking)

        for s in scenarios:
            track = tracks[s.id]
            for t in tentative[s.id].get(day, []):
                delta = t.amount if t.type == "income" else -t.amount
                track.balance += delta
                track.checking_balance += delta

        points.append(ForecastPoint(
            date=format_date(day),
            balance=baseline.balance,
            checking_balance=baseline.checking_balance,
            scenarios={
                s.id: ScenarioPoint(tracks[s.id].balance, tracks[s.id].checking_balance)
                for s in scenarios
            },
        ))
    return points


def summarize_by_month(points: Iterable[ForecastPoint]) -> list[MonthSummary]:
    """Month-end balances plus the lowest net balance seen in each month."""
    result: list[MonthSummary] = []
    for p in points:
        month = p.date[:7]
        if result and result[-1].month == month:
            current = result[-1]
            current.closing_balance = p.balance
            current.closing_checking = p.checking_balance
            current.lowest_balance = min(current.lowest_balance, p.balance)
        else:
            result.append(MonthSummary(month, p.balance, p.checking_balance, p.balance))
    return result


def installments_summary(
    rules: Iterable[RecurringRule],
    today: date,
    months: int = INSTALLMENT_ROADMAP_MONTHS,
) -> InstallmentSummary:
    """Remaining amount owed on capped expense rules and when it falls due."""
    today = parse_date(today)
    horizon = add_months(today, months)
    month_keys = [format_month(add_months(today.replace(day=1), i)) for i in range(months)]
    roadmap = {key: {"month": key, "total": 0.0, "by_payee": {}} for key in month_keys}

    installments = [
        r for r in rules
        if r.is_active and r.type == "expense" and r.is_capped
    ]
    for rule in installments:
        rc = RuleCursor(rule)
        for due in rc.due_through(horizon - timedelta(days=1)):
            if due < today:
                continue
            bucket = roadmap.get(format_month(due))
            if bucket is None:
                continue
            bucket["total"] += rule.amount
            bucket["by_payee"][rule.payee] = bucket["by_payee"].get(rule.payee, 0.0) + rule.amount

    return InstallmentSummary(
        total_remaining=sum(r.remaining_occurrences * r.amount for r in installments),
        roadmap=[roadmap[key] for key in month_keys if roadmap[key]["total"] > 0],
        payees=sorted({r.payee for r in installments}),
    )


def remaining_committed_spend(
    category: str,
    rules: Iterable[RecurringRule],
    history: list[Transaction],
    today: date,
    payee_key: PayeeKey = exact_payee,
) -> float:
    """Expense occurrences for `category` still due from today to month end."""
    today = parse_date(today)
    _, month_end = month_bounds(today)
    total = 0.0
    for rule in rules:
        if not (rule.is_active and rule.type == "expense" and rule.category == category):
            continue
        for due in RuleCursor(rule).due_through(month_end):
            if due >= today:
                total += resolve_amount(rule, due, history, payee_key)
    return total


def make_scenario(
    id: str,
    name: str,
    color: str,
    expense_reduction: float = 0.0,
    one_time_income: float = 0.0,
    recurring_overrides: dict[int, float] | None = None,
    tentative_transactions: Iterable[TentativeTransaction] = (),
) -> Scenario:
    """Build a what-if overlay, rejecting values the projection cannot use."""
    name = name.strip()
    if not name:
        raise ValidationError("Scenario name cannot be empty.")
    if not 0 <= expense_reduction <= 100:
        raise ValidationError("Expense reduction must be between 0 and 100 percent.")
    if one_time_income < 0:
        raise ValidationError("One-time income cannot be negative.")
    overrides = dict(recurring_overrides or {})
    for rule_id, amount in overrides.items():
        if amount < 0:
            raise ValidationError(f"Override for rule {rule_id} cannot be negative.")
    tentative = list(tentative_transactions)
    for t in tentative:
        parse_date(t.date)
        if t.type not in ("income", "expense"):
            raise ValidationError(f"Tentative posting type must be income or expense, not {t.type!r}.")
        if t.amount < 0:
            raise ValidationError("Tentative posting amount cannot be negative.")
    return Scenario(
        id=id,
        name=name,
        color=color,
        expense_reduction=expense_reduction,
        one_time_income=one_time_income,
        recurring_overrides=overrides,
        tentative_transactions=tentative,
    )


class ForecastService:
    def __init__(
        self,
        account_dao: AccountDAO,
        tx_dao: TransactionDAO,
        recurring_dao: RecurringDAO,
        payee_key: PayeeKey = exact_payee,
        cache_size: int = FORECAST_CACHE_SIZE,
    ):
        self._account_dao = account_dao
        self._tx_dao = tx_dao
        self._recurring_dao = recurring_dao
        self._payee_key = payee_key
        self._cache_size = cache_size
        self._cache: OrderedDict[str, list[ForecastPoint]] = OrderedDict()

    def build_config(
        self,
        today: date,
        account_id: int | None = None,
        currency: str | None = None,
        period: str = DEFAULT_FORECAST_PERIOD,
        past_days: int = 0,
        scenarios: Iterable[Scenario] = (),
    ) -> ForecastConfig:
        if period not in FORECAST_PERIODS:
            raise ConfigurationError(f"Unknown forecast period: {period!r}")
        return ForecastConfig(
            accounts=self._account_dao.get_all(),
            transactions=self._tx_dao.get_all(),
            rules=self._recurring_dao.get_active(),
            today=today,
            account_id=account_id,
            currency=currency,
            past_days=past_days,
            horizon_days=FORECAST_PERIODS[period],
            scenarios=list(scenarios),
        )

    def project(self, config: ForecastConfig) -> list[ForecastPoint]:
        """Memoized project(); the returned list is shared, do not mutate it."""
        key = input_fingerprint(config)
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            logger.debug("forecast_cache_hit", key=key[:12])
            return cached
        points = project(config, self._payee_key)
        self._cache[key] = points
        if len(self._cache) > self._cache_size:
            self._cache.popitem(last=False)
        return points

    def get_projection(self, today: date, **kwargs) -> list[ForecastPoint]:
        return self.project(self.build_config(today, **kwargs))

    def get_monthly_summary(self, today: date, **kwargs) -> list[MonthSummary]:
        return summarize_by_month(self.get_projection(today, **kwargs))

    def get_installments(self, today: date) -> InstallmentSummary:
        return installments_summary(self._recurring_dao.get_active(), today)

    def get_committed_spend(self, category: str, today: date) -> float:
        return remaining_committed_spend(
            category, self._recurring_dao.get_active(), self._tx_dao.get_all(),
            today, self._payee_key,
        )

    def get_committed_by_category(self, today: date) -> dict[str, float]:
        """Non-zero remaining committed spend for every category with an active expense rule."""
        rules = self._recurring_dao.get_active()
        history = self._tx_dao.get_all()
        categories = sorted({r.category for r in rules if r.type == "expense" and r.category})
        totals = {
            c: remaining_committed_spend(c, rules, history, today, self._payee_key)
            for c in categories
        }
        return {c: v for c, v in totals.items() if v > 0}

    def get_active_rules(self) -> list[RecurringRule]:
        return self._recurring_dao.get_active()
