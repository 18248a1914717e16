from dataclasses import dataclass, field
from datetime import date, datetime
from typing import NamedTuple, Optional

DAILY = "daily"
WEEKLY = "weekly"
MONTHLY = "monthly"
FREQUENCIES = (DAILY, WEEKLY, MONTHLY)


@dataclass(frozen=True)
class TransactionRecord:
    id: str
    amount: float
    category: str          # "" for incomes
    description: str
    date: datetime
    created_at: datetime
    note: str = ""         # optional free-text note (incomes)


@dataclass(frozen=True)
class HistoryEntry:
    month: int   # 0-11
    year: int
    amount: float
    spent: float


# A budget cap for one category in one month
@dataclass(frozen=True)
class BudgetAllocation:
    id: str
    category: str
    amount: float
    month: int   # 0-11
    year: int
    spent: float = 0.0
    alert_shown: bool = False
    history: tuple[HistoryEntry, ...] = ()

    def is_active(self, month: int, year: int) -> bool:
        return self.month == month and self.year == year


@dataclass(frozen=True)
class RecurringRule:
    id: str
    amount: float
    description: str
    category: str
    frequency: str               # daily / weekly / monthly
    next_due: datetime
    created_at: datetime
    day_of_month: Optional[int] = None  # monthly only
    notified: bool = False


@dataclass(frozen=True)
class Balance:
    total_income: float = 0.0
    total_expenses: float = 0.0
    balance: float = 0.0


@dataclass(frozen=True)
class NotificationSettings:
    enabled: bool = False        # daily expense reminder
    reminder_time: str = "20:00"
    budget_alerts: bool = True
    recurring_alerts: bool = True
    last_reminded: Optional[date] = None   # day the expense reminder last fired


class AlertEvent(NamedTuple):
    kind: str
    payload: dict


@dataclass(frozen=True)
class LedgerSnapshot:
    sequence: int
    reconciled_at: datetime
    expenses: tuple[TransactionRecord, ...] = ()
    incomes: tuple[TransactionRecord, ...] = ()
    budgets: tuple[BudgetAllocation, ...] = ()
    rules: tuple[RecurringRule, ...] = ()
    balance: Balance = field(default_factory=Balance)
