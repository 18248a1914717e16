"""Reconciliation orchestrator: one read-reconcile-write cycle over the ledger.

A cycle loads every collection, materializes due recurring rules, derives
the balance, reconciles budgets, evaluates alerts, writes the results back
and then notifies subscribers. Cycles never overlap: a polling tick that
arrives while one is in flight is dropped, while ``run_now`` (used after
user writes) waits for it and runs a fresh one, unless a cycle that started
after the request has already committed.

Writes are ordered rules, expenses, budgets, settings. When one of them
fails, the blobs already written are put back before the error propagates.
Only a process crash between two writes can leave them out of step, and then a
materialized transaction can be lost but never duplicated.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

from ledger import config
from ledger.alerts import evaluate, filter_events
from ledger.balance import compute_balance
from ledger.domain import LedgerSnapshot
from ledger.errors import StoreError, ValidationError
from ledger.events import LEDGER_RECONCILED, RECONCILE_FAILED, EventBus, event_bus
from ledger.reconciler import reconcile
from ledger.scheduler import tick
from ledger.store import BUDGETS, EXPENSES, RECURRING, SETTINGS, LedgerStore

logger = logging.getLogger(__name__)


class ReconciliationOrchestrator:

    def __init__(
        self,
        store: LedgerStore,
        bus: EventBus = event_bus,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.bus = bus
        self.clock = clock
        self._lock = asyncio.Lock()
        self._sequence = 0
        self._committed_sequence = 0
        self._snapshot: Optional[LedgerSnapshot] = None

    @property
    def snapshot(self) -> Optional[LedgerSnapshot]:
        """Last committed state, for read-only views."""
        return self._snapshot

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def exclusive(self):
        """Hold off reconciliation while a user edit reads and writes the store."""
        async with self._lock:
            yield

    async def run_cycle(self, now: Optional[datetime] = None) -> Optional[LedgerSnapshot]:
        """Polling entry point. Returns None when dropped or failed."""
        if self._lock.locked():
            logger.debug("Reconciliation in flight; dropping tick")
            return None
        async with self._lock:
            return await self._guarded_cycle(now)

    async def run_now(self, now: Optional[datetime] = None) -> Optional[LedgerSnapshot]:
        """Explicit trigger after a user write: waits for any in-flight cycle, then runs.

        A cycle that started after this request already saw the write, so its
        snapshot is returned instead of running another one.
        """
        requested_after = self._sequence
        async with self._lock:
            if self._committed_sequence > requested_after:
                logger.debug("Request superseded by cycle %s", self._committed_sequence)
                return self._snapshot
            return await self._guarded_cycle(now)

    async def run_forever(
        self,
        interval: float = config.POLL_INTERVAL_SECONDS,
        stop: Optional[asyncio.Event] = None,
    ) -> None:
        stop = stop or asyncio.Event()
        while not stop.is_set():
            await self.run_cycle()
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    async def _guarded_cycle(self, now: Optional[datetime]) -> Optional[LedgerSnapshot]:
        self._sequence += 1
        sequence = self._sequence
        try:
            return await self._cycle(sequence, now or self.clock())
        except (StoreError, ValidationError) as e:
            logger.warning("Reconciliation cycle %s failed, keeping last state: %s", sequence, e)
            self.bus.publish(RECONCILE_FAILED, {
                "sequence": sequence,
                "error": e.code,
                "message": str(e),
                "title": "Error",
            })
            return None

    async def _cycle(self, sequence: int, now: datetime) -> LedgerSnapshot:
        expenses, incomes, budgets, rules, settings = await self.store.load_all()

        ticked = tick(rules, now)
        expenses = ticked.transactions + expenses
        balance = compute_balance(incomes, expenses)
        reconciled = reconcile(budgets, expenses, now.month - 1, now.year)
        evaluation = evaluate(reconciled.budgets, ticked.updated_rules, now, settings, expenses)
        events = filter_events(reconciled.events + evaluation.events, settings)

        snapshot = LedgerSnapshot(
            sequence=sequence,
            reconciled_at=now,
            expenses=expenses,
            incomes=incomes,
            budgets=evaluation.budgets,
            rules=evaluation.rules,
            balance=balance,
        )

        writes = []
        if evaluation.rules != rules:
            writes.append((RECURRING, self.store.save_rules, evaluation.rules))
        if ticked.transactions:
            writes.append((EXPENSES, self.store.save_expenses, expenses))
        if evaluation.budgets != budgets:
            writes.append((BUDGETS, self.store.save_budgets, evaluation.budgets))
        if evaluation.settings != settings:
            writes.append((SETTINGS, self.store.save_settings, evaluation.settings))
        await self._write_back(writes)

        self._committed_sequence = sequence
        self._snapshot = snapshot

        for event in events:
            self.bus.publish(event.kind, event.payload)
        self.bus.publish(LEDGER_RECONCILED, {"sequence": sequence, "snapshot": snapshot})

        logger.info(
            "Cycle %s reconciled %s budgets, executed %s recurring rules, emitted %s alerts",
            sequence, len(snapshot.budgets), len(ticked.due_rules), len(events),
        )
        return snapshot

    async def _write_back(self, writes) -> None:
        """Apply every write or none of them."""
        if not writes:
            return
        originals = {key: await self.store.read_raw(key) for key, _, _ in writes}
        attempted = []
        try:
            for key, save, value in writes:
                attempted.append(key)
                await save(value)
        except StoreError:
            for key in reversed(attempted):
                try:
                    await self.store.restore_raw(key, originals[key])
                except StoreError as e:
                    logger.error("Could not restore %s after a failed write-back: %s", key, e)
            raise
