from dataclasses import replace
from typing import Tuple, TypeVar

from ledger.domain import BudgetAllocation
from ledger.functional import Maybe, first

R = TypeVar('R')


def add_record(records: Tuple[R, ...], record: R) -> Tuple[R, ...]:
    # newest first
    return (record,) + records


def replace_record(records: Tuple[R, ...], record: R) -> Tuple[R, ...]:
    return tuple(record if r.id == record.id else r for r in records)


def remove_record(records: Tuple[R, ...], record_id: str) -> Tuple[R, ...]:
    return tuple(filter(lambda r: r.id != record_id, records))


def find_record(records: Tuple[R, ...], record_id: str) -> Maybe[R]:
    return first(records, lambda r: r.id == record_id)


def find_budget(budgets: Tuple[BudgetAllocation, ...], category: str) -> Maybe[BudgetAllocation]:
    return first(budgets, lambda b: b.category == category)


def update_budget_amount(
    budgets: Tuple[BudgetAllocation, ...], category: str, new_amount: float
) -> Tuple[BudgetAllocation, ...]:
    return tuple(
        replace(b, amount=new_amount) if b.category == category else b
        for b in budgets
    )
