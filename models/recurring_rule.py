from dataclasses import dataclass
from typing import Optional


@dataclass
class RecurringRule:
    id: Optional[int]
    amount: float
    payee: str
    category: str
    type: str               # 'income' | 'expense' | 'transfer'
    account_id: int
    frequency: str          # see utils.constants.FREQUENCIES
    start_date: str         # 'YYYY-MM-DD'
    next_due_date: str      # cursor; only the occurrence processor advances it
    is_active: bool = True
    amount_type: str = "fixed"               # 'fixed' | 'average' | 'last_year'
    to_account_id: Optional[int] = None
    custom_interval: Optional[int] = None
    custom_unit: Optional[str] = None        # 'day' | 'week' | 'month' | 'year'
    total_occurrences: Optional[int] = None  # None or <= 0 = uncapped
    occurrences_processed: int = 0
    notes: str = ""

    @property
    def is_capped(self) -> bool:
        return self.total_occurrences is not None and self.total_occurrences > 0

    @property
    def cap_reached(self) -> bool:
        return self.is_capped and self.occurrences_processed >= self.total_occurrences

    @property
    def remaining_occurrences(self) -> Optional[int]:
        if not self.is_capped:
            return None
        return max(0, self.total_occurrences - self.occurrences_processed)
