from datetime import datetime

from ledger.domain import BudgetAllocation, HistoryEntry, TransactionRecord
from ledger.events import BUDGET_THRESHOLD
from ledger.filters import month_window
from ledger.reconciler import budget_for_month, category_spent, reconcile, rollover


def make_expense(id, amount, category, ts):
    return TransactionRecord(
        id=id, amount=amount, category=category, description="", date=ts, created_at=ts
    )


def make_budget(category="Food", amount=100000, month=5, year=2024, **kw):
    return BudgetAllocation(id=f"b-{category}", category=category, amount=amount, month=month, year=year, **kw)


def test_month_window_december_wraps_year():
    start, end = month_window(11, 2024)
    assert start == datetime(2024, 12, 1)
    assert end == datetime(2025, 1, 1)


def test_category_spent_sums_only_category_in_window():
    expenses = (
        make_expense("e1", 300, "Food", datetime(2024, 6, 1, 0, 0)),
        make_expense("e2", 200, "Food", datetime(2024, 6, 29)),
        make_expense("e3", 500, "Transport", datetime(2024, 6, 10)),
        make_expense("e4", 700, "Food", datetime(2024, 7, 1, 0, 0)),
        make_expense("e5", 900, "Food", datetime(2024, 5, 31, 23, 59, 59)),
    )
    assert category_spent(expenses, "Food", 5, 2024) == 500


def test_reconcile_same_month_recomputes_spent():
    budget = make_budget(spent=12345)
    expenses = (
        make_expense("e1", 1000, "Food", datetime(2024, 6, 2)),
        make_expense("e2", 2000, "Food", datetime(2024, 6, 3)),
    )

    result = reconcile((budget,), expenses, 5, 2024)

    assert result.budgets[0].spent == 3000
    assert result.budgets[0].amount == 100000
    assert result.events == ()


def test_spent_follows_edits_and_deletes():
    budget = make_budget()
    expenses = (make_expense("e1", 40000, "Food", datetime(2024, 6, 2)),)
    after_add = reconcile((budget,), expenses, 5, 2024).budgets

    edited = (make_expense("e1", 10000, "Food", datetime(2024, 6, 2)),)
    after_edit = reconcile(after_add, edited, 5, 2024).budgets
    after_delete = reconcile(after_edit, (), 5, 2024).budgets

    assert after_add[0].spent == 40000
    assert after_edit[0].spent == 10000
    assert after_delete[0].spent == 0


def test_threshold_scenario_emits_once():
    budget = make_budget(spent=0)
    expenses = (make_expense("e1", 95000, "Food", datetime(2024, 6, 10)),)

    first = reconcile((budget,), expenses, 5, 2024)
    second = reconcile(first.budgets, expenses, 5, 2024)

    assert first.budgets[0].spent == 95000
    assert first.budgets[0].alert_shown is True
    assert len(first.events) == 1
    assert first.events[0].kind == BUDGET_THRESHOLD
    assert first.events[0].payload["category"] == "Food"
    assert second.events == ()
    assert second.budgets[0].alert_shown is True


def test_alert_shown_stays_true_when_spend_drops_within_month():
    budget = make_budget(alert_shown=True)
    result = reconcile((budget,), (), 5, 2024)
    assert result.budgets[0].alert_shown is True
    assert result.events == ()


def test_rollover_archives_previous_month():
    budget = make_budget(month=4, year=2024, spent=80000, alert_shown=True)
    expenses = (
        make_expense("e1", 80000, "Food", datetime(2024, 5, 20)),
        make_expense("e2", 15000, "Food", datetime(2024, 6, 2)),
    )

    result = reconcile((budget,), expenses, 5, 2024)
    rolled = result.budgets[0]

    assert rolled.month == 5 and rolled.year == 2024
    assert rolled.spent == 15000
    assert rolled.alert_shown is False
    assert rolled.history == (HistoryEntry(month=4, year=2024, amount=100000, spent=80000),)
    assert result.events == ()


def test_rollover_is_idempotent_within_month():
    budget = make_budget(month=4, year=2024)
    once = reconcile((budget,), (), 5, 2024).budgets
    twice = reconcile(once, (), 5, 2024).budgets
    assert len(once[0].history) == 1
    assert len(twice[0].history) == 1
    assert once == twice


def test_rollover_across_year_boundary():
    budget = make_budget(month=11, year=2023, spent=10)
    rolled = reconcile((budget,), (), 0, 2024).budgets[0]
    assert (rolled.month, rolled.year) == (0, 2024)
    assert rolled.history[-1].month == 11
    assert rolled.history[-1].year == 2023


def test_alert_resets_once_per_rollover_and_can_fire_again():
    budget = make_budget(month=4, year=2024, alert_shown=True)
    expenses = (make_expense("e1", 99000, "Food", datetime(2024, 6, 5)),)

    rolled = reconcile((budget,), expenses, 5, 2024)
    checked = reconcile(rolled.budgets, expenses, 5, 2024)

    assert rolled.budgets[0].alert_shown is False
    assert len(checked.events) == 1
    assert checked.budgets[0].alert_shown is True


def test_rollover_helper_keeps_amount():
    budget = make_budget(month=4, spent=5)
    rolled = rollover(budget, 5, 2024, 7)
    assert rolled.amount == budget.amount
    assert rolled.spent == 7
    assert budget.history == ()


def test_zero_amount_budget_never_alerts():
    budget = make_budget(amount=0)
    expenses = (make_expense("e1", 50, "Food", datetime(2024, 6, 5)),)
    result = reconcile((budget,), expenses, 5, 2024)
    assert result.events == ()
    assert result.budgets[0].spent == 50


def test_budget_for_month_views():
    history = (HistoryEntry(month=3, year=2024, amount=900, spent=450),)
    budget = make_budget(amount=1000, spent=100, history=history)

    assert budget_for_month(budget, 5, 2024) is budget
    past = budget_for_month(budget, 3, 2024)
    assert (past.amount, past.spent, past.month) == (900, 450, 3)
    empty = budget_for_month(budget, 1, 2024)
    assert (empty.amount, empty.spent, empty.month) == (1000, 0.0, 1)
