import math
from collections import defaultdict
from datetime import datetime
from functools import reduce
from typing import Any, Dict, Iterable, Iterator, List, Tuple

from ledger import config
from ledger.domain import Balance, BudgetAllocation, TransactionRecord
from ledger.filters import in_month, iter_transactions, month_window, shift_month


def finite(value: Any) -> float:
    """Coerce to a finite float; NaN, infinities and non-numbers become 0."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def total_amount(records: Iterable[TransactionRecord]) -> float:
    return finite(reduce(lambda acc, r: acc + finite(r.amount), records, 0.0))


def compute_balance(
    incomes: Iterable[TransactionRecord], expenses: Iterable[TransactionRecord]
) -> Balance:
    total_income = total_amount(incomes)
    total_expenses = total_amount(expenses)
    return Balance(
        total_income=total_income,
        total_expenses=total_expenses,
        balance=finite(total_income - total_expenses),
    )


def category_totals(expenses: Iterable[TransactionRecord]) -> Dict[str, float]:
    totals: Dict[str, float] = defaultdict(float)
    for e in expenses:
        totals[e.category] += finite(e.amount)
    return dict(totals)


def monthly_statistics(
    expenses: Iterable[TransactionRecord], month: int, year: int
) -> Dict[str, Any]:
    monthly = tuple(iter_transactions(expenses, in_month(month, year)))
    return {
        "total": total_amount(monthly),
        "category_totals": category_totals(monthly),
        "count": len(monthly),
    }


def budget_summary(budgets: Iterable[BudgetAllocation]) -> Dict[str, float]:
    budgets = tuple(budgets)
    total_budget = finite(sum(finite(b.amount) for b in budgets))
    total_spent = finite(sum(finite(b.spent) for b in budgets))
    return {
        "total_budget": total_budget,
        "total_spent": total_spent,
        "remaining": total_budget - total_spent,
        "utilization_rate": (total_spent / total_budget) * 100 if total_budget > 0 else 0.0,
    }


def budget_recommendations(
    expenses: Iterable[TransactionRecord],
    now: datetime,
    months: int = config.RECOMMENDATION_MONTHS,
    buffer: float = config.RECOMMENDATION_BUFFER,
) -> List[Dict[str, Any]]:
    """Suggest a monthly budget per category from the last `months` months of spending."""
    start_month, start_year = shift_month(now.month - 1, now.year, -months)
    since, _ = month_window(start_month, start_year)

    totals: Dict[str, float] = defaultdict(float)
    counts: Dict[str, int] = defaultdict(int)
    for e in iter_transactions(expenses, lambda t: t.date >= since):
        totals[e.category] += finite(e.amount)
        counts[e.category] += 1

    recommendations = [
        {
            "category": category,
            "recommended_budget": math.ceil(round((total / months) * buffer, 6)),
            "frequency": counts[category],
            "current_spending": total / months,
        }
        for category, total in totals.items()
    ]
    return sorted(recommendations, key=lambda r: r["current_spending"], reverse=True)


def top_categories(expenses: Iterable[TransactionRecord], k: int) -> Iterator[Tuple[str, float]]:
    ordered = sorted(category_totals(expenses).items(), key=lambda item: item[1], reverse=True)
    for name, total in ordered[: max(0, k)]:
        yield name, total
