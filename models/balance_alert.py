from dataclasses import dataclass


@dataclass
class BalanceAlert:
    account_id: int
    account_name: str
    date: str               # 'YYYY-MM-DD' of the first projected breach
    projected_balance: float
    trigger_payee: str
    trigger_amount: float
    severity: str           # 'critical' | 'warning'

    @property
    def key(self) -> tuple[int, str]:
        return (self.account_id, self.date)
