"""Threshold and due-soon alerts over reconciled ledger state.

Budget threshold alerts and recurring-due alerts are each guarded by a
persisted flag on the record (``alert_shown`` / ``notified``), so evaluating
the same state on every poll emits them at most once. The daily expense
reminder is guarded the same way by ``last_reminded`` on the notification
settings. The 75% budget warning carries no flag and may repeat.
"""

import math
from dataclasses import replace
from datetime import datetime
from typing import Iterable, List, NamedTuple, Optional, Tuple

from ledger import config
from ledger.balance import finite
from ledger.domain import (
    AlertEvent,
    BudgetAllocation,
    NotificationSettings,
    RecurringRule,
    TransactionRecord,
)
from ledger.events import BUDGET_THRESHOLD, BUDGET_WARNING, EXPENSE_REMINDER, RECURRING_DUE

DAY_SECONDS = 24 * 60 * 60


class Evaluation(NamedTuple):
    events: Tuple[AlertEvent, ...]
    budgets: Tuple[BudgetAllocation, ...]
    rules: Tuple[RecurringRule, ...]
    settings: NotificationSettings


def utilization(allocation: BudgetAllocation) -> float:
    amount = finite(allocation.amount)
    if amount == 0:
        return 0.0
    return finite(allocation.spent) / amount


def _budget_payload(allocation: BudgetAllocation, ratio: float, title: str) -> dict:
    remaining = finite(allocation.amount) - finite(allocation.spent)
    percent = round(ratio * 100)
    return {
        "budget_id": allocation.id,
        "category": allocation.category,
        "amount": allocation.amount,
        "spent": allocation.spent,
        "ratio": ratio,
        "remaining": remaining,
        "month": allocation.month,
        "year": allocation.year,
        "title": title,
        "message": (
            f"You've used {percent}% of your {allocation.category} budget. "
            f"Remaining: {config.CURRENCY} {remaining:,.0f}"
        ),
    }


def check_budget_threshold(
    allocation: BudgetAllocation, threshold: float = config.BUDGET_ALERT_RATIO
) -> Tuple[BudgetAllocation, Optional[AlertEvent]]:
    ratio = utilization(allocation)
    if ratio < threshold or allocation.alert_shown:
        return allocation, None
    event = AlertEvent(BUDGET_THRESHOLD, _budget_payload(allocation, ratio, "Budget Alert"))
    return replace(allocation, alert_shown=True), event


def budget_warning(
    allocation: BudgetAllocation,
    warning: float = config.BUDGET_WARNING_RATIO,
    threshold: float = config.BUDGET_ALERT_RATIO,
) -> Optional[AlertEvent]:
    ratio = utilization(allocation)
    if allocation.alert_shown or not warning <= ratio < threshold:
        return None
    return AlertEvent(BUDGET_WARNING, _budget_payload(allocation, ratio, "Budget Warning"))


def days_until_due(rule: RecurringRule, now: datetime) -> int:
    return math.ceil((rule.next_due - now).total_seconds() / DAY_SECONDS)


def _due_phrase(days: int) -> str:
    if days < 0:
        return "overdue"
    if days == 0:
        return "due today"
    return "due tomorrow"


def check_recurring_due(
    rule: RecurringRule, now: datetime, notice_days: int = config.RECURRING_NOTICE_DAYS
) -> Tuple[RecurringRule, Optional[AlertEvent]]:
    days = days_until_due(rule, now)
    if days > notice_days or rule.notified:
        return rule, None
    event = AlertEvent(RECURRING_DUE, {
        "rule_id": rule.id,
        "description": rule.description,
        "amount": rule.amount,
        "category": rule.category,
        "next_due": rule.next_due.isoformat(),
        "days_until_due": days,
        "title": "Recurring Transaction Due",
        "message": f"{rule.description} ({config.CURRENCY} {rule.amount:,.0f}) is {_due_phrase(days)}!",
    })
    return replace(rule, notified=True), event


def expense_reminder(
    expenses: Iterable[TransactionRecord], settings: NotificationSettings, now: datetime
) -> Tuple[NotificationSettings, Optional[AlertEvent]]:
    """Once a day, from the reminder time on, unless an expense was recorded today."""
    if not settings.enabled or settings.last_reminded == now.date():
        return settings, None
    if now.time() < datetime.strptime(settings.reminder_time, "%H:%M").time():
        return settings, None
    if any(e.date.date() == now.date() for e in expenses):
        return settings, None
    event = AlertEvent(EXPENSE_REMINDER, {
        "title": "Daily Expense Reminder",
        "message": "Don't forget to record your expenses for today!",
    })
    return replace(settings, last_reminded=now.date()), event


def enabled_kinds(settings: NotificationSettings) -> Tuple[str, ...]:
    kinds = []
    if settings.budget_alerts:
        kinds += [BUDGET_THRESHOLD, BUDGET_WARNING]
    if settings.recurring_alerts:
        kinds.append(RECURRING_DUE)
    if settings.enabled:
        kinds.append(EXPENSE_REMINDER)
    return tuple(kinds)


def filter_events(events: Iterable[AlertEvent], settings: NotificationSettings) -> Tuple[AlertEvent, ...]:
    kinds = enabled_kinds(settings)
    return tuple(e for e in events if e.kind in kinds)


def evaluate(
    budgets: Optional[Iterable[BudgetAllocation]],
    rules: Optional[Iterable[RecurringRule]],
    now: datetime,
    settings: Optional[NotificationSettings] = None,
    expenses: Iterable[TransactionRecord] = (),
) -> Evaluation:
    settings = settings or NotificationSettings()
    events: List[AlertEvent] = []

    checked_budgets = []
    for allocation in budgets or ():
        if settings.budget_alerts:
            warning = budget_warning(allocation)
            if warning:
                events.append(warning)
            allocation, event = check_budget_threshold(allocation)
            if event:
                events.append(event)
        checked_budgets.append(allocation)

    checked_rules = []
    for rule in rules or ():
        if settings.recurring_alerts:
            rule, event = check_recurring_due(rule, now)
            if event:
                events.append(event)
        checked_rules.append(rule)

    settings, reminder = expense_reminder(expenses, settings, now)
    if reminder:
        events.append(reminder)

    return Evaluation(tuple(events), tuple(checked_budgets), tuple(checked_rules), settings)
