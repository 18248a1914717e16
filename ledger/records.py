"""Validation and (de)serialization of persisted ledger records.

Every parser returns ``Right(record)`` or ``Left(error_dict)`` where the
error dict carries ``error`` and ``message`` keys. Persisted JSON uses the
camelCase field names of the stored blobs. Datetimes are kept as naive
local time in memory and written with their UTC offset.
"""

import math
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional

from ledger.balance import finite
from ledger.domain import (
    FREQUENCIES,
    MONTHLY,
    BudgetAllocation,
    HistoryEntry,
    NotificationSettings,
    RecurringRule,
    TransactionRecord,
)
from ledger.functional import Either, Left, Right

# Rules saved before categories were tracked on them
DEFAULT_RULE_CATEGORY = "Recurring"


def _error(error: str, message: str, **extra) -> Left:
    return Left({"error": error, "message": message, **extra})


def parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def format_datetime(value: datetime) -> str:
    return value.astimezone().isoformat()


def parse_amount(value: Any) -> Either[dict, float]:
    if isinstance(value, bool):
        return _error("invalid_amount", f"Amount {value!r} is not a number", amount=value)
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return _error("invalid_amount", f"Amount {value!r} is not a number", amount=value)
    if not math.isfinite(amount) or amount <= 0:
        return _error("invalid_amount", f"Amount {value!r} must be a positive finite number", amount=value)
    return Right(amount)


def _require_dict(raw: Any) -> Either[dict, dict]:
    if not isinstance(raw, dict):
        return _error("invalid_record", f"Expected an object, got {type(raw).__name__}")
    return Right(raw)


def _require(*fields: str) -> Callable[[dict], Either[dict, dict]]:
    def _check(raw: dict) -> Either[dict, dict]:
        missing = [f for f in fields if raw.get(f) in (None, "")]
        if missing:
            return _error("missing_field", f"Missing required field(s): {', '.join(missing)}", fields=missing)
        return Right(raw)

    return _check


def _int_in_range(raw: dict, key: str, low: int, high: int) -> Either[dict, int]:
    value = raw.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        return _error("invalid_field", f"{key} must be an integer between {low} and {high}", field=key)
    return Right(value)


def _datetime_field(raw: dict, key: str, default: Optional[datetime] = None) -> Either[dict, datetime]:
    parsed = parse_datetime(raw.get(key))
    if parsed is None:
        if default is not None:
            return Right(default)
        return _error("invalid_date", f"{key} is not a valid timestamp", field=key)
    return Right(parsed)


def parse_transaction(raw: Any, require_category: bool = True) -> Either[dict, TransactionRecord]:
    required = ("id", "amount", "date", "category") if require_category else ("id", "amount", "date")

    def build(data: dict) -> Either[dict, TransactionRecord]:
        return parse_amount(data["amount"]).bind(
            lambda amount: _datetime_field(data, "date").bind(
                lambda date: _datetime_field(data, "createdAt", default=date).bind(
                    lambda created_at: Right(TransactionRecord(
                        id=str(data["id"]),
                        amount=amount,
                        category=str(data.get("category") or "") if require_category else "",
                        description=str(data.get("description") or ""),
                        date=date,
                        created_at=created_at,
                        note=str(data.get("note") or ""),
                    ))
                )
            )
        )

    return _require_dict(raw).bind(_require(*required)).bind(build)


def parse_expense(raw: Any) -> Either[dict, TransactionRecord]:
    return parse_transaction(raw, require_category=True)


def parse_income(raw: Any) -> Either[dict, TransactionRecord]:
    return parse_transaction(raw, require_category=False)


def _number_field(raw: dict, key: str) -> Either[dict, float]:
    value = raw.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value) or value < 0:
        return _error("invalid_field", f"{key} must be a non-negative number", field=key)
    return Right(float(value))


def _parse_history_entry(entry: Any) -> Either[dict, HistoryEntry]:
    if not isinstance(entry, dict):
        return _error("invalid_field", "history entries must be objects", field="history")
    return _int_in_range(entry, "month", 0, 11).bind(
        lambda month: _int_in_range(entry, "year", 1, 9999).bind(
            lambda year: _number_field(entry, "amount").bind(
                lambda amount: _number_field(entry, "spent").bind(
                    lambda spent: Right(HistoryEntry(month=month, year=year, amount=amount, spent=spent))
                )
            )
        )
    )


def _parse_history(entries: Any) -> Either[dict, tuple]:
    if entries is None:
        return Right(())
    if not isinstance(entries, list):
        return _error("invalid_field", "history must be a list", field="history")
    parsed = []
    for entry in entries:
        result = _parse_history_entry(entry)
        if result.is_left():
            return result
        parsed.append(result.get_or_else(None))
    return Right(tuple(parsed))


def parse_budget(raw: Any) -> Either[dict, BudgetAllocation]:
    def build(data: dict) -> Either[dict, BudgetAllocation]:
        return parse_amount(data["amount"]).bind(
            lambda amount: _int_in_range(data, "month", 0, 11).bind(
                lambda month: _int_in_range(data, "year", 1, 9999).bind(
                    lambda year: _parse_history(data.get("history")).bind(
                        lambda history: Right(BudgetAllocation(
                            id=str(data["id"]),
                            category=str(data["category"]),
                            amount=amount,
                            month=month,
                            year=year,
                            spent=max(0.0, finite(data.get("spent"))),
                            alert_shown=bool(data.get("alertShown", False)),
                            history=history,
                        ))
                    )
                )
            )
        )

    return _require_dict(raw).bind(_require("id", "category", "amount")).bind(build)


def _parse_day_of_month(data: dict) -> Either[dict, Optional[int]]:
    if data.get("frequency") != MONTHLY or data.get("dayOfMonth") is None:
        return Right(None)
    return _int_in_range(data, "dayOfMonth", 1, 31)


def parse_rule(raw: Any) -> Either[dict, RecurringRule]:
    def check_frequency(data: dict) -> Either[dict, dict]:
        if data["frequency"] not in FREQUENCIES:
            return _error("invalid_frequency", f"Unknown frequency {data['frequency']!r}", field="frequency")
        return Right(data)

    def build(data: dict) -> Either[dict, RecurringRule]:
        return parse_amount(data["amount"]).bind(
            lambda amount: _datetime_field(data, "nextDue").bind(
                lambda next_due: _datetime_field(data, "createdAt", default=next_due).bind(
                    lambda created_at: _parse_day_of_month(data).bind(
                        lambda day_of_month: Right(RecurringRule(
                            id=str(data["id"]),
                            amount=amount,
                            description=str(data.get("description") or ""),
                            category=str(data.get("category") or DEFAULT_RULE_CATEGORY),
                            frequency=data["frequency"],
                            next_due=next_due,
                            created_at=created_at,
                            day_of_month=day_of_month,
                            notified=bool(data.get("notified", False)),
                        ))
                    )
                )
            )
        )

    return (
        _require_dict(raw)
        .bind(_require("id", "amount", "frequency", "nextDue"))
        .bind(check_frequency)
        .bind(build)
    )


def parse_settings(raw: Any) -> Either[dict, NotificationSettings]:
    def build(data: dict) -> Either[dict, NotificationSettings]:
        defaults = NotificationSettings()
        reminder_time = data.get("reminderTime", defaults.reminder_time)
        try:
            datetime.strptime(reminder_time, "%H:%M")
        except (TypeError, ValueError):
            return _error("invalid_field", f"reminderTime {reminder_time!r} is not HH:MM", field="reminderTime")
        last_reminded = data.get("lastReminded")
        if last_reminded is not None:
            try:
                last_reminded = date.fromisoformat(last_reminded)
            except (TypeError, ValueError):
                return _error("invalid_field", f"lastReminded {last_reminded!r} is not a date", field="lastReminded")
        return Right(NotificationSettings(
            enabled=bool(data.get("enabled", defaults.enabled)),
            reminder_time=reminder_time,
            budget_alerts=bool(data.get("budgetAlerts", defaults.budget_alerts)),
            recurring_alerts=bool(data.get("recurringAlerts", defaults.recurring_alerts)),
            last_reminded=last_reminded,
        ))

    return _require_dict(raw).bind(build)


def transaction_to_dict(record: TransactionRecord, include_category: bool = True) -> Dict[str, Any]:
    data = {
        "id": record.id,
        "amount": record.amount,
        "description": record.description,
        "date": format_datetime(record.date),
        "createdAt": format_datetime(record.created_at),
    }
    if include_category:
        data["category"] = record.category
    if record.note:
        data["note"] = record.note
    return data


def budget_to_dict(allocation: BudgetAllocation) -> Dict[str, Any]:
    return {
        "id": allocation.id,
        "category": allocation.category,
        "amount": allocation.amount,
        "spent": allocation.spent,
        "month": allocation.month,
        "year": allocation.year,
        "alertShown": allocation.alert_shown,
        "history": [
            {"month": h.month, "year": h.year, "amount": h.amount, "spent": h.spent}
            for h in allocation.history
        ],
    }


def rule_to_dict(rule: RecurringRule) -> Dict[str, Any]:
    return {
        "id": rule.id,
        "amount": rule.amount,
        "description": rule.description,
        "category": rule.category,
        "frequency": rule.frequency,
        "dayOfMonth": rule.day_of_month,
        "nextDue": format_datetime(rule.next_due),
        "notified": rule.notified,
        "createdAt": format_datetime(rule.created_at),
    }


def settings_to_dict(settings: NotificationSettings) -> Dict[str, Any]:
    return {
        "enabled": settings.enabled,
        "reminderTime": settings.reminder_time,
        "budgetAlerts": settings.budget_alerts,
        "recurringAlerts": settings.recurring_alerts,
        "lastReminded": settings.last_reminded.isoformat() if settings.last_reminded else None,
    }
