"""Due dates for recurring rules and materialization of due rules."""

import calendar
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable, NamedTuple, Optional, Tuple

from ledger.domain import DAILY, MONTHLY, WEEKLY, RecurringRule, TransactionRecord
from ledger.filters import shift_month


class Tick(NamedTuple):
    due_rules: Tuple[RecurringRule, ...]       # rules as they were when found due
    updated_rules: Tuple[RecurringRule, ...]   # every rule, due ones advanced
    transactions: Tuple[TransactionRecord, ...]


def days_in_month(year: int, month: int) -> int:
    """Number of days in `month` (0-11) of `year`."""
    return calendar.monthrange(year, month + 1)[1]


def next_due_date(frequency: str, anchor: datetime, day_of_month: Optional[int] = None) -> datetime:
    if frequency == DAILY:
        return anchor + timedelta(days=1)
    if frequency == WEEKLY:
        return anchor + timedelta(days=7)
    if frequency == MONTHLY:
        month, year = shift_month(anchor.month - 1, anchor.year, 1)
        # clamp, e.g. the 31st in February is the 28th/29th, never early March
        day = min(day_of_month or 1, days_in_month(year, month))
        return datetime(year, month + 1, day, tzinfo=anchor.tzinfo)
    raise ValueError(f"Unknown frequency: {frequency}")


def is_due(rule: RecurringRule, now: datetime) -> bool:
    return now >= rule.next_due


def transaction_id(now: datetime, rule_id: str) -> str:
    return f"{int(now.timestamp() * 1000)}-{rule_id}"


def execute_rule(rule: RecurringRule, now: datetime) -> Tuple[RecurringRule, TransactionRecord]:
    record = TransactionRecord(
        id=transaction_id(now, rule.id),
        amount=rule.amount,
        category=rule.category,
        description=rule.description,
        date=now,
        created_at=now,
    )
    advanced = replace(
        rule,
        next_due=next_due_date(rule.frequency, now, rule.day_of_month),
        notified=False,
    )
    return advanced, record


def tick(rules: Iterable[RecurringRule], now: datetime) -> Tick:
    due, updated, records = [], [], []
    for rule in rules:
        if is_due(rule, now):
            due.append(rule)
            rule, record = execute_rule(rule, now)
            records.append(record)
        updated.append(rule)
    return Tick(tuple(due), tuple(updated), tuple(records))


def new_rule(
    rule_id: str,
    amount: float,
    description: str,
    category: str,
    frequency: str,
    now: datetime,
    day_of_month: Optional[int] = None,
) -> RecurringRule:
    if frequency != MONTHLY:
        day_of_month = None
    return RecurringRule(
        id=rule_id,
        amount=amount,
        description=description,
        category=category,
        frequency=frequency,
        next_due=next_due_date(frequency, now, day_of_month),
        created_at=now,
        day_of_month=day_of_month,
    )
