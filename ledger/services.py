import logging
from dataclasses import replace
from datetime import datetime
from typing import Awaitable, Callable, Optional, Tuple, TypeVar
from uuid import uuid4

from ledger.domain import (
    FREQUENCIES,
    MONTHLY,
    BudgetAllocation,
    NotificationSettings,
    RecurringRule,
    TransactionRecord,
)
from ledger.errors import BudgetConflictError, RecordNotFoundError, ValidationError
from ledger.orchestrator import ReconciliationOrchestrator
from ledger.records import parse_amount, parse_datetime
from ledger.scheduler import new_rule
from ledger.transforms import (
    add_record,
    find_budget,
    find_record,
    remove_record,
    replace_record,
    update_budget_amount,
)

logger = logging.getLogger(__name__)

R = TypeVar('R')


def _amount(value) -> float:
    result = parse_amount(value)
    if result.is_left():
        error = result.get_error()
        raise ValidationError(error["message"], [error])
    return result.get_or_else(0.0)


def _required_text(value: Optional[str], field: str) -> str:
    if not value or not str(value).strip():
        raise ValidationError(f"{field} is required", [{"error": "missing_field", "message": f"{field} is required", "fields": [field]}])
    return str(value).strip()


def _date(value) -> datetime:
    if not isinstance(value, datetime):
        message = f"date {value!r} is not a datetime"
        raise ValidationError(message, [{"error": "invalid_date", "message": message, "field": "date"}])
    return parse_datetime(value)


def _text(value, field: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        message = f"{field} must be text"
        raise ValidationError(message, [{"error": "invalid_field", "message": message, "field": field}])
    return value


class LedgerService:
    """User-initiated edits of the ledger.

    Each edit reads, changes and writes one collection while reconciliation
    is held off, then triggers a fresh reconciliation cycle so derived state
    (budget spent, alerts) catches up immediately.
    """

    def __init__(self, orchestrator: ReconciliationOrchestrator, clock: Optional[Callable[[], datetime]] = None):
        self.orchestrator = orchestrator
        self.store = orchestrator.store
        self.clock = clock or orchestrator.clock

    def _new_id(self, now: datetime) -> str:
        return f"{int(now.timestamp() * 1000)}-{uuid4().hex[:8]}"

    async def _write(
        self,
        load: Callable[[], Awaitable[Tuple[R, ...]]],
        save: Callable[[Tuple[R, ...]], Awaitable[None]],
        change: Callable[[Tuple[R, ...]], Tuple[R, ...]],
        action: str,
    ) -> None:
        async with self.orchestrator.exclusive():
            records = await load()
            await save(change(records))
        logger.info("%s", action)
        await self.orchestrator.run_now()

    @staticmethod
    def _existing(records: Tuple[R, ...], record_id: str, collection: str) -> R:
        found = find_record(records, record_id)
        if found.is_none():
            raise RecordNotFoundError(collection, record_id)
        return found.get_or_else(None)

    # --- expenses

    async def add_expense(
        self, amount, category: str, description: str = "", date: Optional[datetime] = None
    ) -> TransactionRecord:
        now = self.clock()
        record = TransactionRecord(
            id=self._new_id(now),
            amount=_amount(amount),
            category=_required_text(category, "category"),
            description=_text(description, "description"),
            date=_date(date) if date is not None else now,
            created_at=now,
        )
        await self._write(
            self.store.load_expenses, self.store.save_expenses,
            lambda records: add_record(records, record),
            f"Added expense {record.id} ({record.category})",
        )
        return record

    async def edit_expense(self, expense_id: str, **changes) -> TransactionRecord:
        return await self._edit_transaction(
            "expenses", expense_id, changes, self.store.load_expenses, self.store.save_expenses
        )

    async def delete_expense(self, expense_id: str) -> None:
        await self._delete("expenses", expense_id, self.store.load_expenses, self.store.save_expenses)

    # --- incomes

    async def add_income(
        self, amount, description: str = "", note: str = "", date: Optional[datetime] = None
    ) -> TransactionRecord:
        now = self.clock()
        record = TransactionRecord(
            id=self._new_id(now),
            amount=_amount(amount),
            category="",
            description=_text(description, "description"),
            date=_date(date) if date is not None else now,
            created_at=now,
            note=_text(note, "note"),
        )
        await self._write(
            self.store.load_incomes, self.store.save_incomes,
            lambda records: add_record(records, record),
            f"Added income {record.id}",
        )
        return record

    async def edit_income(self, income_id: str, **changes) -> TransactionRecord:
        changes.pop("category", None)
        return await self._edit_transaction(
            "incomes", income_id, changes, self.store.load_incomes, self.store.save_incomes
        )

    async def delete_income(self, income_id: str) -> None:
        await self._delete("incomes", income_id, self.store.load_incomes, self.store.save_incomes)

    async def _edit_transaction(self, collection, record_id, changes, load, save) -> TransactionRecord:
        allowed = {"amount", "category", "description", "date", "note"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(f"Cannot edit field(s): {', '.join(sorted(unknown))}")
        if "amount" in changes:
            changes["amount"] = _amount(changes["amount"])
        if "category" in changes:
            changes["category"] = _required_text(changes["category"], "category")
        if "date" in changes:
            changes["date"] = _date(changes["date"])
        for field in ("description", "note"):
            if field in changes:
                changes[field] = _text(changes[field], field)

        edited = {}

        def change(records):
            edited["record"] = replace(self._existing(records, record_id, collection), **changes)
            return replace_record(records, edited["record"])

        await self._write(load, save, change, f"Edited {collection} record {record_id}")
        return edited["record"]

    async def _delete(self, collection, record_id, load, save) -> None:
        def change(records):
            self._existing(records, record_id, collection)
            return remove_record(records, record_id)

        await self._write(load, save, change, f"Deleted {collection} record {record_id}")

    # --- budgets

    async def set_budget(self, category: str, amount, overwrite: bool = False) -> BudgetAllocation:
        """Create a budget for the current month, or change an existing one's amount.

        An existing allocation for the category is only changed when
        `overwrite` is true; otherwise BudgetConflictError lets the caller
        ask the user.
        """
        category = _required_text(category, "category")
        amount = _amount(amount)
        now = self.clock()
        result = {}

        def change(budgets):
            existing = find_budget(budgets, category)
            if existing.is_some():
                if not overwrite:
                    raise BudgetConflictError(category)
                updated = update_budget_amount(budgets, category, amount)
                result["budget"] = find_budget(updated, category).get_or_else(None)
                return updated
            result["budget"] = BudgetAllocation(
                id=self._new_id(now),
                category=category,
                amount=amount,
                month=now.month - 1,
                year=now.year,
            )
            return add_record(budgets, result["budget"])

        await self._write(
            self.store.load_budgets, self.store.save_budgets, change, f"Set budget for {category}"
        )
        return result["budget"]

    async def delete_budget(self, budget_id: str) -> None:
        await self._delete("budgets", budget_id, self.store.load_budgets, self.store.save_budgets)

    # --- recurring rules

    async def add_recurring_rule(
        self,
        amount,
        description: str,
        category: str,
        frequency: str,
        day_of_month: Optional[int] = None,
    ) -> RecurringRule:
        if frequency not in FREQUENCIES:
            raise ValidationError(f"Unknown frequency {frequency!r}", [{"error": "invalid_frequency", "message": frequency}])
        if frequency == MONTHLY and day_of_month is not None and not 1 <= day_of_month <= 31:
            raise ValidationError("dayOfMonth must be between 1 and 31")
        now = self.clock()
        rule = new_rule(
            rule_id=self._new_id(now),
            amount=_amount(amount),
            description=_required_text(description, "description"),
            category=_required_text(category, "category"),
            frequency=frequency,
            now=now,
            day_of_month=day_of_month,
        )
        await self._write(
            self.store.load_rules, self.store.save_rules,
            lambda rules: add_record(rules, rule),
            f"Added {frequency} recurring rule {rule.id}",
        )
        return rule

    async def delete_recurring_rule(self, rule_id: str) -> None:
        await self._delete("recurringTransactions", rule_id, self.store.load_rules, self.store.save_rules)

    # --- notification settings

    async def update_notification_settings(self, **changes) -> NotificationSettings:
        async with self.orchestrator.exclusive():
            settings = replace(await self.store.load_settings(), **changes)
            if "reminder_time" in changes:
                try:
                    datetime.strptime(settings.reminder_time, "%H:%M")
                except ValueError as e:
                    raise ValidationError(f"reminder_time {settings.reminder_time!r} is not HH:MM") from e
            await self.store.save_settings(settings)
        logger.info("Updated notification settings")
        return settings
