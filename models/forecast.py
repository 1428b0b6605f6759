from dataclasses import dataclass, field


@dataclass
class ScenarioPoint:
    balance: float
    checking_balance: float


@dataclass
class ForecastPoint:
    date: str               # 'YYYY-MM-DD'
    balance: float          # net over all target accounts
    checking_balance: float # checking accounts only
    scenarios: dict[str, ScenarioPoint] = field(default_factory=dict)


@dataclass
class MonthSummary:
    month: str              # 'YYYY-MM'
    closing_balance: float
    closing_checking: float
    lowest_balance: float


@dataclass
class InstallmentSummary:
    total_remaining: float
    roadmap: list[dict] = field(default_factory=list)   # [{month, total, by_payee}]
    payees: list[str] = field(default_factory=list)
