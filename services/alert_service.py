from dataclasses import dataclass
from datetime import date, timedelta

import structlog

from database.account_dao import AccountDAO
from database.recurring_dao import RecurringDAO
from database.transaction_dao import TransactionDAO
from models.account import Account
from models.balance_alert import BalanceAlert
from models.recurring_rule import RecurringRule
from models.transaction import Transaction
from services.amount_resolver import PayeeKey, exact_payee
from services.session import SessionState
from services.simulation import (
    SimEvent, input_fingerprint, opening_balances, signed_impacts, simulate_days,
)
from utils.constants import ALERT_HORIZON_DAYS, CRITICAL_ALERT_DAYS, CRITICAL_ALERT_DEFICIT
from utils.date_helpers import format_date, parse_date

logger = structlog.get_logger(__name__)


@dataclass
class AlertConfig:
    accounts: list[Account]
    transactions: list[Transaction]
    rules: list[RecurringRule]
    today: date
    horizon_days: int = ALERT_HORIZON_DAYS


def alert_severity(days_until: int, projected_balance: float) -> str:
    if days_until <= CRITICAL_ALERT_DAYS or projected_balance <= -CRITICAL_ALERT_DEFICIT:
        return "critical"
    return "warning"


def detect_liquidity_alerts(
    config: AlertConfig, payee_key: PayeeKey = exact_payee
) -> list[BalanceAlert]:
    """
    First projected day each liquid account closes below zero, scanning
    forward from today on the baseline track. The alert names the event
    whose posting pushed the balance under zero. Accounts that are already
    negative when the scan starts are not reported.
    """
    today = parse_date(config.today)
    end = today + timedelta(days=max(0, config.horizon_days))
    liquid = [a for a in config.accounts if a.is_liquid]
    balances = opening_balances(liquid, config.transactions, today)
    watching = {a.id: a for a in liquid if balances[a.id] >= 0}

    alerts: list[BalanceAlert] = []
    for day, events in simulate_days(list(config.transactions), config.rules, today, end, payee_key):
        if not watching:
            break
        crossed_by: dict[int, SimEvent] = {}
        for event in events:
            for account_id, delta in signed_impacts(
                event.type, event.amount, event.account_id, event.to_account_id
            ):
                if account_id not in balances:
                    continue
                before = balances[account_id]
                balances[account_id] = before + delta
                if before >= 0 > balances[account_id]:
                    crossed_by[account_id] = event

        for account_id, event in crossed_by.items():
            if account_id not in watching or balances[account_id] >= 0:
                continue
            account = watching.pop(account_id)
            projected = balances[account_id]
            alerts.append(BalanceAlert(
                account_id=account_id,
                account_name=account.name,
                date=format_date(day),
                projected_balance=projected,
                trigger_payee=event.payee,
                trigger_amount=event.amount,
                severity=alert_severity((day - today).days, projected),
            ))

    alerts.sort(key=lambda a: (a.date, a.account_id))
    return alerts


class AlertService:
    def __init__(
        self,
        account_dao: AccountDAO,
        tx_dao: TransactionDAO,
        recurring_dao: RecurringDAO,
        payee_key: PayeeKey = exact_payee,
    ):
        self._account_dao = account_dao
        self._tx_dao = tx_dao
        self._recurring_dao = recurring_dao
        self._payee_key = payee_key
        self._last_key: str | None = None
        self._last_alerts: list[BalanceAlert] = []

    def build_config(self, today: date, horizon_days: int = ALERT_HORIZON_DAYS) -> AlertConfig:
        return AlertConfig(
            accounts=self._account_dao.get_all(),
            transactions=self._tx_dao.get_all(),
            rules=self._recurring_dao.get_active(),
            today=today,
            horizon_days=horizon_days,
        )

    def detect(self, config: AlertConfig) -> list[BalanceAlert]:
        """detect_liquidity_alerts(), skipped when the inputs are unchanged."""
        key = input_fingerprint(config)
        if key != self._last_key:
            self._last_alerts = detect_liquidity_alerts(config, self._payee_key)
            self._last_key = key
            logger.info("balance_alerts_computed", count=len(self._last_alerts))
        return list(self._last_alerts)

    def get_alerts(
        self,
        session: SessionState,
        today: date,
        horizon_days: int = ALERT_HORIZON_DAYS,
    ) -> list[BalanceAlert]:
        alerts = self.detect(self.build_config(today, horizon_days))
        return [a for a in alerts if a.key not in session.dismissed_alerts]

    def dismiss(self, session: SessionState, alert: BalanceAlert):
        session.dismissed_alerts.add(alert.key)
