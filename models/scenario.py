from dataclasses import dataclass, field


@dataclass
class TentativeTransaction:
    """A what-if one-off posting that only exists inside a scenario."""
    date: str               # 'YYYY-MM-DD'
    amount: float
    payee: str
    type: str = "expense"   # 'income' | 'expense'


@dataclass
class Scenario:
    id: str
    name: str
    color: str = "#10b981"
    is_active: bool = True
    expense_reduction: float = 0.0      # percent, 0-100
    one_time_income: float = 0.0
    recurring_overrides: dict[int, float] = field(default_factory=dict)
    tentative_transactions: list[TentativeTransaction] = field(default_factory=list)
