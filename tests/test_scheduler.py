from datetime import datetime, timedelta

import pytest

from ledger.domain import DAILY, MONTHLY, WEEKLY, RecurringRule
from ledger.scheduler import days_in_month, execute_rule, is_due, new_rule, next_due_date, tick


def make_rule(id="r1", frequency=MONTHLY, next_due=datetime(2024, 3, 1), day_of_month=1, notified=False):
    return RecurringRule(
        id=id,
        amount=50000,
        description="Rent",
        category="Bills",
        frequency=frequency,
        next_due=next_due,
        created_at=datetime(2024, 1, 1),
        day_of_month=day_of_month,
        notified=notified,
    )


def test_days_in_month():
    assert days_in_month(2024, 1) == 29
    assert days_in_month(2023, 1) == 28
    assert days_in_month(2024, 11) == 31


@pytest.mark.parametrize("anchor", [
    datetime(2024, 1, 31, 8, 30),
    datetime(2024, 2, 28, 23, 59),
    datetime(2024, 12, 31),
])
def test_daily_and_weekly(anchor):
    assert next_due_date(DAILY, anchor) == anchor + timedelta(days=1)
    assert next_due_date(WEEKLY, anchor) == anchor + timedelta(days=7)


def test_monthly_clamps_to_leap_february():
    assert next_due_date(MONTHLY, datetime(2024, 1, 31), 31) == datetime(2024, 2, 29)


def test_monthly_clamps_to_short_months():
    assert next_due_date(MONTHLY, datetime(2023, 1, 31), 31) == datetime(2023, 2, 28)
    assert next_due_date(MONTHLY, datetime(2024, 3, 15), 31) == datetime(2024, 4, 30)


def test_monthly_defaults_to_first_and_wraps_year():
    assert next_due_date(MONTHLY, datetime(2024, 12, 20)) == datetime(2025, 1, 1)
    assert next_due_date(MONTHLY, datetime(2024, 5, 2), 15) == datetime(2024, 6, 15)


def test_unknown_frequency():
    with pytest.raises(ValueError):
        next_due_date("yearly", datetime(2024, 1, 1))


def test_is_due_boundary():
    rule = make_rule(next_due=datetime(2024, 3, 1))
    assert is_due(rule, datetime(2024, 3, 1))
    assert not is_due(rule, datetime(2024, 2, 29, 23, 59))


def test_tick_monthly_scenario():
    rule = make_rule(next_due=datetime(2024, 3, 1), day_of_month=1, notified=True)
    now = datetime(2024, 3, 2)

    result = tick((rule,), now)

    assert result.due_rules == (rule,)
    assert len(result.transactions) == 1
    record = result.transactions[0]
    assert record.date == now
    assert record.amount == 50000
    assert record.category == "Bills"
    assert record.description == "Rent"
    updated = result.updated_rules[0]
    assert updated.next_due == datetime(2024, 4, 1)
    assert updated.notified is False
    assert updated.id == rule.id


def test_tick_leaves_rules_not_due():
    due = make_rule("r1", next_due=datetime(2024, 3, 1))
    later = make_rule("r2", frequency=WEEKLY, next_due=datetime(2024, 3, 10), day_of_month=None)

    result = tick((due, later), datetime(2024, 3, 2))

    assert len(result.updated_rules) == 2
    assert result.updated_rules[1] is later
    assert [r.id for r in result.due_rules] == ["r1"]


def test_tick_twice_does_not_rematerialize():
    rule = make_rule(frequency=DAILY, next_due=datetime(2024, 3, 1, 9), day_of_month=None)
    first = tick((rule,), datetime(2024, 3, 1, 10))
    second = tick(first.updated_rules, datetime(2024, 3, 1, 11))
    assert len(first.transactions) == 1
    assert second.transactions == ()
    assert first.updated_rules[0].next_due == datetime(2024, 3, 2, 10)


def test_execute_rule_ids_are_unique_per_rule():
    now = datetime(2024, 3, 2)
    _, a = execute_rule(make_rule("r1"), now)
    _, b = execute_rule(make_rule("r2"), now)
    assert a.id != b.id


def test_new_rule_drops_day_for_non_monthly():
    now = datetime(2024, 1, 31, 12)
    monthly = new_rule("r1", 100, "Gym", "Health", MONTHLY, now, day_of_month=31)
    weekly = new_rule("r2", 100, "Gym", "Health", WEEKLY, now, day_of_month=31)
    assert monthly.next_due == datetime(2024, 2, 29)
    assert weekly.day_of_month is None
    assert weekly.next_due == now + timedelta(days=7)
    assert monthly.notified is False
