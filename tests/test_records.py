from datetime import date, datetime, timedelta, timezone

from ledger.domain import BudgetAllocation, HistoryEntry, NotificationSettings, RecurringRule
from ledger.records import (
    DEFAULT_RULE_CATEGORY,
    budget_to_dict,
    parse_budget,
    parse_datetime,
    parse_expense,
    parse_income,
    parse_rule,
    parse_settings,
    rule_to_dict,
    settings_to_dict,
)


def test_parse_expense_from_stored_shape():
    result = parse_expense({
        "id": "1718000000000",
        "amount": 95000,
        "description": "Groceries",
        "category": "Food",
        "date": "2024-06-10T09:00:00",
    })
    assert result.is_right()
    record = result.get_or_else(None)
    assert record.amount == 95000.0
    assert record.date == datetime(2024, 6, 10, 9)
    assert record.created_at == record.date


def test_parse_expense_rejects_missing_category():
    result = parse_expense({"id": "1", "amount": 5, "date": "2024-06-10T09:00:00"})
    assert result.is_left()
    assert result.get_error()["error"] == "missing_field"
    assert "category" in result.get_error()["fields"]


def test_parse_income_ignores_category_and_keeps_note():
    result = parse_income({"id": "1", "amount": "1500.5", "date": "2024-06-10T09:00:00", "note": "bonus"})
    record = result.get_or_else(None)
    assert record.amount == 1500.5
    assert record.category == ""
    assert record.note == "bonus"


def test_parse_amount_rejections():
    for bad in (0, -5, "abc", None, True, float("nan"), float("inf")):
        result = parse_expense({"id": "1", "amount": bad, "category": "Food", "date": "2024-06-10T09:00:00"})
        assert result.is_left(), bad


def test_parse_datetime_normalizes_utc_to_local_naive():
    parsed = parse_datetime("2024-06-10T09:00:00.000Z")
    expected = datetime(2024, 6, 10, 9, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
    assert parsed == expected
    assert parsed.tzinfo is None
    assert parse_datetime("not a date") is None
    assert parse_datetime(None) is None


def test_parse_budget_defaults_and_history():
    result = parse_budget({
        "id": "b1",
        "category": "Food",
        "amount": 100000,
        "month": 5,
        "year": 2024,
        "history": [{"month": 4, "year": 2024, "amount": 90000, "spent": 85000}],
    })
    budget = result.get_or_else(None)
    assert budget.spent == 0.0
    assert budget.alert_shown is False
    assert budget.history == (HistoryEntry(4, 2024, 90000.0, 85000.0),)


def test_parse_budget_rejects_bad_month():
    result = parse_budget({"id": "b1", "category": "Food", "amount": 10, "month": 12, "year": 2024})
    assert result.is_left()
    assert result.get_error()["field"] == "month"


def test_budget_round_trip():
    budget = BudgetAllocation(
        "b1", "Food", 100000, 5, 2024, spent=95000, alert_shown=True,
        history=(HistoryEntry(4, 2024, 100000, 20000),),
    )
    assert parse_budget(budget_to_dict(budget)).get_or_else(None) == budget


def test_parse_rule_legacy_shape():
    result = parse_rule({
        "id": "r1",
        "amount": 300,
        "description": "Netflix",
        "frequency": "monthly",
        "dayOfMonth": None,
        "nextDue": "2024-04-01T00:00:00",
    })
    rule = result.get_or_else(None)
    assert rule.category == DEFAULT_RULE_CATEGORY
    assert rule.day_of_month is None
    assert rule.notified is False


def test_parse_rule_rejects_unknown_frequency_and_bad_day():
    base = {"id": "r1", "amount": 1, "nextDue": "2024-04-01T00:00:00"}
    assert parse_rule({**base, "frequency": "yearly"}).get_error()["error"] == "invalid_frequency"
    assert parse_rule({**base, "frequency": "monthly", "dayOfMonth": 32}).is_left()


def test_parse_rule_ignores_day_for_weekly():
    rule = parse_rule({
        "id": "r1", "amount": 1, "frequency": "weekly", "dayOfMonth": 40, "nextDue": "2024-04-01T00:00:00",
    }).get_or_else(None)
    assert rule.day_of_month is None


def test_rule_round_trip():
    rule = RecurringRule(
        id="r1", amount=300, description="Netflix", category="Entertainment",
        frequency="monthly", next_due=datetime(2024, 4, 1), created_at=datetime(2024, 1, 1, 12, 30),
        day_of_month=1, notified=True,
    )
    assert parse_rule(rule_to_dict(rule)).get_or_else(None) == rule


def test_settings():
    settings = NotificationSettings(enabled=True, reminder_time="07:30", budget_alerts=False)
    assert parse_settings(settings_to_dict(settings)).get_or_else(None) == settings
    assert parse_settings({"reminderTime": "25:99"}).is_left()
    assert parse_settings([]).is_left()


def test_settings_keep_last_reminder_day():
    settings = NotificationSettings(enabled=True, last_reminded=date(2024, 6, 20))
    data = settings_to_dict(settings)
    assert data["lastReminded"] == "2024-06-20"
    assert parse_settings(data).get_or_else(None) == settings
    assert parse_settings({"lastReminded": "yesterday"}).is_left()
    assert parse_settings({}).get_or_else(None).last_reminded is None


def test_offset_timestamps_compare_in_local_time():
    aware = datetime(2024, 6, 10, 9, tzinfo=timezone(timedelta(hours=6, minutes=30)))
    parsed = parse_datetime(aware.isoformat())
    assert parsed == aware.astimezone().replace(tzinfo=None)
