import logging
from datetime import datetime
from typing import Callable, Dict, List, NamedTuple

__all__ = [
    'event_bus', 'Event', 'EventBus',
    'BUDGET_THRESHOLD', 'BUDGET_WARNING', 'RECURRING_DUE', 'EXPENSE_REMINDER',
    'LEDGER_RECONCILED', 'RECONCILE_FAILED', 'ALERT_KINDS',
]

logger = logging.getLogger(__name__)

# Alert kinds, also used as event names on the bus
BUDGET_THRESHOLD = "BudgetThreshold"
BUDGET_WARNING = "BudgetWarning"
RECURRING_DUE = "RecurringDue"
EXPENSE_REMINDER = "ExpenseReminder"
ALERT_KINDS = (BUDGET_THRESHOLD, BUDGET_WARNING, RECURRING_DUE, EXPENSE_REMINDER)

# Cycle lifecycle
LEDGER_RECONCILED = "LedgerReconciled"
RECONCILE_FAILED = "ReconcileFailed"


class Event(NamedTuple):
    name: str
    ts: str
    payload: dict


Handler = Callable[[Event, dict], object]


class EventBus:
    """Fire-and-forget publish/subscribe used to reach notification and view subscribers."""

    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> None:
        self._subscribers.setdefault(name, []).append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> None:
        if handler in self._subscribers.get(name, []):
            self._subscribers[name].remove(handler)

    def publish(self, name: str, payload: dict) -> List[object]:
        if name not in self._subscribers:
            return []

        event = Event(name=name, ts=datetime.now().isoformat(), payload=payload)

        results = []
        for handler in list(self._subscribers[name]):
            try:
                results.append(handler(event, payload))
            except Exception:
                # subscribers must not break the reconciliation cycle
                logger.exception("Handler %s failed for event %s", getattr(handler, "__name__", handler), name)
        return results


event_bus = EventBus()


def log_alert_handler(event: Event, payload: dict) -> dict:
    logger.info("%s: %s", event.name, payload.get("message", ""))
    return {"logged": event.name}


def register_default_handlers(bus: EventBus = event_bus) -> None:
    for kind in ALERT_KINDS:
        bus.subscribe(kind, log_alert_handler)


register_default_handlers()
