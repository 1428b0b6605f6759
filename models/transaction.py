from dataclasses import dataclass
from typing import Optional


@dataclass
class Transaction:
    id: Optional[int]
    date: str               # 'YYYY-MM-DD'
    amount: float           # magnitude; direction comes from type
    payee: str
    category: str
    type: str               # 'income' | 'expense' | 'transfer'
    account_id: int
    to_account_id: Optional[int] = None      # transfers only
    recurring_rule_id: Optional[int] = None
    notes: str = ""
    is_reconciled: bool = False
    created_at: str = ""
