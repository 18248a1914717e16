import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
from datetime import datetime

import numpy as np
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from ledger import config
from ledger.alerts import utilization
from ledger.balance import budget_recommendations, budget_summary, monthly_statistics, top_categories
from ledger.domain import FREQUENCIES, MONTHLY
from ledger.errors import BudgetConflictError, LedgerError
from ledger.events import ALERT_KINDS, RECONCILE_FAILED, EventBus
from ledger.filters import shift_month
from ledger.orchestrator import ReconciliationOrchestrator
from ledger.reconciler import budget_for_month
from ledger.services import LedgerService
from ledger.store import JsonFileStore, LedgerStore

st.set_page_config(page_title="Finance Tracker", layout="wide")

CATEGORIES = ["Food", "Transport", "Shopping", "Bills", "Entertainment", "Health"]
CUR = config.CURRENCY


def run(coro):
    return asyncio.run(coro)


if "orchestrator" not in st.session_state:
    config.configure_logging()
    config.ensure_data_directory()
    bus = EventBus()
    st.session_state.notices = []

    def collect_notice(event, payload):
        st.session_state.notices.append((event.name, payload.get("title", event.name), payload.get("message", "")))

    for kind in ALERT_KINDS + (RECONCILE_FAILED,):
        bus.subscribe(kind, collect_notice)

    orchestrator = ReconciliationOrchestrator(LedgerStore(JsonFileStore(config.DATA_DIR)), bus=bus)
    st.session_state.orchestrator = orchestrator
    st.session_state.service = LedgerService(orchestrator)

orchestrator: ReconciliationOrchestrator = st.session_state.orchestrator
service: LedgerService = st.session_state.service

# every rerun is a view becoming active
run(orchestrator.run_cycle())
snapshot = orchestrator.snapshot

for name, title, message in st.session_state.notices:
    if name == RECONCILE_FAILED:
        st.error(f"{title}: {message}")
    else:
        st.warning(f"**{title}**: {message}")
st.session_state.notices = []

if snapshot is None:
    st.info("Ledger could not be loaded yet. It will be retried on the next refresh.")
    st.stop()


def records_df(records, with_category=True):
    rows = [
        {
            "id": r.id,
            "date": pd.to_datetime(r.date),
            "amount": r.amount,
            "category": r.category if with_category else None,
            "description": r.description,
        }
        for r in records
    ]
    return pd.DataFrame(rows, columns=["id", "date", "amount", "category", "description"])


menu = st.sidebar.radio("Menu", ["🏠 Home", "💸 Expenses", "💰 Income", "📋 Budgets", "🔁 Recurring", "🔔 Settings"])

now = datetime.now()
month, year = now.month - 1, now.year

if menu == "🏠 Home":
    balance = snapshot.balance
    stats = monthly_statistics(snapshot.expenses, month, year)
    k1, k2, k3, k4 = st.columns(4)
    k1.metric("Balance", f"{balance.balance:,.0f} {CUR}")
    k2.metric("Total Income", f"{balance.total_income:,.0f} {CUR}")
    k3.metric("Total Expenses", f"{balance.total_expenses:,.0f} {CUR}")
    k4.metric("This Month", f"{stats['total']:,.0f} {CUR}", delta=f"{stats['count']} expenses")

    months = [shift_month(month, year, -i) for i in range(11, -1, -1)]
    labels = [datetime(y, m + 1, 1).strftime("%b %y") for m, y in months]
    exp_m = np.array([monthly_statistics(snapshot.expenses, m, y)["total"] for m, y in months])
    inc_df = records_df(snapshot.incomes, with_category=False)
    if not inc_df.empty:
        inc_m = np.array([
            inc_df[(inc_df["date"].dt.month == m + 1) & (inc_df["date"].dt.year == y)]["amount"].sum()
            for m, y in months
        ])
    else:
        inc_m = np.zeros(len(months))

    fig_ts = go.Figure()
    fig_ts.add_trace(go.Scatter(x=labels, y=inc_m, mode="lines+markers", name="Income"))
    fig_ts.add_trace(go.Scatter(x=labels, y=exp_m, mode="lines+markers", name="Expense"))
    fig_ts.update_layout(template="plotly_dark", margin=dict(t=30, b=10, l=10, r=10))
    st.plotly_chart(fig_ts, use_container_width=True)

    top = list(top_categories(snapshot.expenses, 6))
    if top:
        fig_cat = px.pie(pd.DataFrame(top, columns=["Category", "Total"]), values="Total", names="Category",
                         title="Top Categories")
        st.plotly_chart(fig_cat, use_container_width=True)

elif menu == "💸 Expenses":
    st.title("💸 Expenses")
    with st.form("add_expense", clear_on_submit=True):
        amount = st.number_input(f"Amount ({CUR})", min_value=0.0, step=100.0)
        category = st.selectbox("Category", CATEGORIES)
        description = st.text_input("Description")
        if st.form_submit_button("Add Expense"):
            try:
                run(service.add_expense(amount, category, description))
                st.rerun()
            except LedgerError as e:
                st.error(str(e))

    df = records_df(snapshot.expenses)
    if df.empty:
        st.info("No expenses yet.")
    else:
        st.dataframe(df.drop(columns=["id"]), use_container_width=True)
        to_delete = st.selectbox("Delete expense", [""] + list(df["id"]))
        if to_delete and st.button("Delete"):
            run(service.delete_expense(to_delete))
            st.rerun()

elif menu == "💰 Income":
    st.title("💰 Income")
    with st.form("add_income", clear_on_submit=True):
        amount = st.number_input(f"Amount ({CUR})", min_value=0.0, step=100.0)
        description = st.text_input("Description")
        note = st.text_input("Note")
        if st.form_submit_button("Add Income"):
            try:
                run(service.add_income(amount, description, note))
                st.rerun()
            except LedgerError as e:
                st.error(str(e))
    df = records_df(snapshot.incomes, with_category=False)
    st.dataframe(df.drop(columns=["id", "category"]), use_container_width=True)

elif menu == "📋 Budgets":
    st.title("📋 Budgets")
    c1, c2 = st.columns(2)
    view_month = c1.selectbox("Month", list(range(12)), index=month,
                              format_func=lambda m: datetime(2000, m + 1, 1).strftime("%B"))
    view_year = c2.number_input("Year", value=year, step=1)
    budgets = [budget_for_month(b, view_month, int(view_year)) for b in snapshot.budgets]

    summary = budget_summary(budgets)
    s1, s2, s3 = st.columns(3)
    s1.metric("Total Budget", f"{summary['total_budget']:,.0f} {CUR}")
    s2.metric("Spent", f"{summary['total_spent']:,.0f} {CUR}")
    s3.metric("Utilization", f"{summary['utilization_rate']:.0f}%")

    for b in budgets:
        st.markdown(f"**{b.category}**: {b.spent:,.0f} / {b.amount:,.0f} {CUR}")
        st.progress(min(1.0, utilization(b)))

    with st.form("set_budget", clear_on_submit=True):
        category = st.selectbox("Category", CATEGORIES)
        amount = st.number_input(f"Budget ({CUR})", min_value=0.0, step=1000.0)
        overwrite = st.checkbox("Update if a budget for this category exists")
        if st.form_submit_button("Save Budget"):
            try:
                run(service.set_budget(category, amount, overwrite=overwrite))
                st.rerun()
            except BudgetConflictError:
                st.warning("A budget for this category already exists. Tick 'Update' to overwrite it.")
            except LedgerError as e:
                st.error(str(e))

    recs = budget_recommendations(snapshot.expenses, now)
    if recs:
        st.subheader("💡 Recommendations")
        st.table(pd.DataFrame(recs))

elif menu == "🔁 Recurring":
    st.title("🔁 Recurring Transactions")
    with st.form("add_rule", clear_on_submit=True):
        amount = st.number_input(f"Amount ({CUR})", min_value=0.0, step=100.0)
        description = st.text_input("Description")
        category = st.selectbox("Category", CATEGORIES)
        frequency = st.radio("Frequency", FREQUENCIES, index=FREQUENCIES.index(MONTHLY), horizontal=True)
        day = st.number_input("Day of Month (1-31)", min_value=1, max_value=31, value=1)
        if st.form_submit_button("Add Recurring Transaction"):
            try:
                run(service.add_recurring_rule(amount, description, category, frequency,
                                               int(day) if frequency == MONTHLY else None))
                st.rerun()
            except LedgerError as e:
                st.error(str(e))

    for rule in snapshot.rules:
        cols = st.columns([4, 1])
        cols[0].markdown(
            f"**{rule.description}** · {rule.amount:,.0f} {CUR} · {rule.frequency} · "
            f"next due {rule.next_due:%Y-%m-%d}"
        )
        if cols[1].button("Delete", key=f"del_{rule.id}"):
            run(service.delete_recurring_rule(rule.id))
            st.rerun()

elif menu == "🔔 Settings":
    st.title("🔔 Notifications")
    settings = run(service.store.load_settings())
    enabled = st.toggle("Enable Daily Reminders", value=settings.enabled)
    reminder = st.time_input("Reminder Time", value=datetime.strptime(settings.reminder_time, "%H:%M").time())
    budget_alerts = st.toggle("Budget Threshold Alerts", value=settings.budget_alerts)
    recurring_alerts = st.toggle("Recurring Transaction Alerts", value=settings.recurring_alerts)
    if st.button("Save"):
        run(service.update_notification_settings(
            enabled=enabled,
            reminder_time=reminder.strftime("%H:%M"),
            budget_alerts=budget_alerts,
            recurring_alerts=recurring_alerts,
        ))
        st.success("Saved")
