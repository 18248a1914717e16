"""Budget reconciliation: recompute ``spent`` and roll allocations over months.

``spent`` is only ever assigned here, from the expense collection. A
rollover archives the previous month into ``history`` exactly once per
month transition: once the allocation's month matches the reference month,
later calls take the same-month path.
"""

from dataclasses import replace
from typing import Iterable, NamedTuple, Tuple

from ledger import alerts
from ledger.balance import total_amount
from ledger.domain import AlertEvent, BudgetAllocation, HistoryEntry, TransactionRecord
from ledger.filters import all_of, by_category, in_month, iter_transactions
from ledger.functional import Maybe, first


class Reconciliation(NamedTuple):
    budgets: Tuple[BudgetAllocation, ...]
    events: Tuple[AlertEvent, ...]


def category_spent(
    expenses: Iterable[TransactionRecord], category: str, month: int, year: int
) -> float:
    matching = iter_transactions(expenses, all_of(by_category(category), in_month(month, year)))
    return total_amount(matching)


def rollover(allocation: BudgetAllocation, month: int, year: int, spent: float) -> BudgetAllocation:
    snapshot = HistoryEntry(
        month=allocation.month,
        year=allocation.year,
        amount=allocation.amount,
        spent=allocation.spent,
    )
    return replace(
        allocation,
        month=month,
        year=year,
        spent=spent,
        alert_shown=False,
        history=allocation.history + (snapshot,),
    )


def reconcile_allocation(
    allocation: BudgetAllocation,
    expenses: Tuple[TransactionRecord, ...],
    reference_month: int,
    reference_year: int,
) -> Tuple[BudgetAllocation, Tuple[AlertEvent, ...]]:
    spent = category_spent(expenses, allocation.category, reference_month, reference_year)

    if not allocation.is_active(reference_month, reference_year):
        return rollover(allocation, reference_month, reference_year, spent), ()

    allocation, event = alerts.check_budget_threshold(replace(allocation, spent=spent))
    return allocation, (event,) if event else ()


def reconcile(
    budgets: Iterable[BudgetAllocation],
    expenses: Iterable[TransactionRecord],
    reference_month: int,
    reference_year: int,
) -> Reconciliation:
    expenses = tuple(expenses)
    reconciled = []
    events = []
    for allocation in budgets:
        allocation, emitted = reconcile_allocation(allocation, expenses, reference_month, reference_year)
        reconciled.append(allocation)
        events.extend(emitted)
    return Reconciliation(tuple(reconciled), tuple(events))


def budget_for_month(allocation: BudgetAllocation, month: int, year: int) -> BudgetAllocation:
    """View of an allocation for a browsed month: active state, archived snapshot, or empty."""
    if allocation.is_active(month, year):
        return allocation
    return (
        history_entry(allocation, month, year)
        .map(lambda h: replace(allocation, amount=h.amount, spent=h.spent, month=h.month, year=h.year))
        .get_or_else(replace(allocation, month=month, year=year, spent=0.0))
    )


def history_entry(allocation: BudgetAllocation, month: int, year: int) -> Maybe[HistoryEntry]:
    return first(allocation.history, lambda h: h.month == month and h.year == year)
