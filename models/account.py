from dataclasses import dataclass
from typing import Optional

ACCOUNT_TYPES = ("checking", "savings", "credit", "cash", "investment", "pension", "loan")
LIQUID_ACCOUNT_TYPES = ("checking", "credit", "cash")

ACCOUNT_TYPE_LABELS = {
    "checking": "Checking",
    "savings": "Savings",
    "credit": "Credit Card",
    "cash": "Cash",
    "investment": "Investment",
    "pension": "Pension",
    "loan": "Loan",
}


@dataclass
class Account:
    id: Optional[int]
    name: str
    account_type: str = "checking"
    currency: str = "USD"
    initial_balance: float = 0.0
    pay_from_account_id: Optional[int] = None   # credit cards: account that settles the bill
    created_at: str = ""

    @property
    def is_liquid(self) -> bool:
        return self.account_type in LIQUID_ACCOUNT_TYPES

    @property
    def is_checking(self) -> bool:
        return self.account_type == "checking"
