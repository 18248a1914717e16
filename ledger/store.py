"""Ledger store adapter: typed async access to the persisted collections.

Each collection is one named JSON array blob in a key-value store. Reads
and writes are whole-blob; there is no atomicity across keys.

A store call that times out keeps running in its worker thread. The next
call on the same key waits for it first, so a late write can never land
after a newer one.
"""

import asyncio
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, TypeVar

from ledger import config
from ledger.domain import BudgetAllocation, NotificationSettings, RecurringRule, TransactionRecord
from ledger.errors import StoreError, StoreTimeoutError, ValidationError
from ledger.functional import Either, compose, pipe
from ledger.records import (
    budget_to_dict,
    parse_budget,
    parse_expense,
    parse_income,
    parse_rule,
    parse_settings,
    rule_to_dict,
    settings_to_dict,
    transaction_to_dict,
)

logger = logging.getLogger(__name__)

EXPENSES = "expenses"
INCOMES = "incomes"
BUDGETS = "budgets"
RECURRING = "recurringTransactions"
SETTINGS = "notificationSettings"

R = TypeVar('R')


class KeyValueStore(ABC):

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        pass

    @abstractmethod
    def set(self, key: str, value: bytes) -> None:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        pass


class MemoryStore(KeyValueStore):

    def __init__(self, initial: Optional[Dict[str, bytes]] = None):
        self._data: Dict[str, bytes] = dict(initial or {})

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """One `<key>.json` file per collection inside `directory`."""

    def __init__(self, directory: Optional[Path] = None):
        self._directory = Path(directory or config.DATA_DIR)

    def _path(self, key: str) -> Path:
        return self._directory / f"{key}.json"

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_bytes()
        except OSError as e:
            raise StoreError(f"Failed to read {key}: {e}", key=key) from e

    def set(self, key: str, value: bytes) -> None:
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=f".{key}_", suffix=".json", dir=self._directory)
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(value)
                os.replace(tmp_path, self._path(key))
            finally:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
        except OSError as e:
            raise StoreError(f"Failed to write {key}: {e}", key=key) from e

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StoreError(f"Failed to remove {key}: {e}", key=key) from e


def _decode(key: str) -> Callable[[bytes], Any]:
    def _loads(raw: bytes) -> Any:
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValidationError(f"Collection {key} is not valid JSON: {e}") from e

    return _loads


def _require_list(key: str) -> Callable[[Any], list]:
    def _check(data: Any) -> list:
        if not isinstance(data, list):
            raise ValidationError(f"Invalid {key} data format: expected a list")
        return data

    return _check


def _encode(data: Any) -> bytes:
    return json.dumps(data, ensure_ascii=False).encode("utf-8")


def _consume(task: asyncio.Future) -> None:
    # results of calls that outlived their timeout are never awaited
    if not task.cancelled():
        task.exception()


class LedgerStore:
    """Async, validated access to expenses, incomes, budgets and recurring rules."""

    def __init__(self, kv: KeyValueStore, timeout: float = config.STORE_TIMEOUT_SECONDS):
        self.kv = kv
        self.timeout = timeout
        self._pending: Dict[str, asyncio.Future] = {}

    async def _settle(self, key: str) -> None:
        pending = self._pending.get(key)
        if pending is None or pending.done():
            return
        done, _ = await asyncio.wait({pending}, timeout=self.timeout)
        if not done:
            raise StoreTimeoutError(f"Earlier operation on {key} is still running", key=key)

    async def _call(self, key: str, func: Callable, *args):
        await self._settle(key)
        task = asyncio.ensure_future(asyncio.to_thread(func, key, *args))
        task.add_done_callback(_consume)
        self._pending[key] = task
        try:
            return await asyncio.wait_for(asyncio.shield(task), self.timeout)
        except asyncio.TimeoutError as e:
            raise StoreTimeoutError(f"Store operation on {key} timed out after {self.timeout}s", key=key) from e
        except OSError as e:
            raise StoreError(f"Store operation on {key} failed: {e}", key=key) from e

    async def _load(self, key: str, parse: Callable[[Any], Either[dict, R]]) -> Tuple[R, ...]:
        raw = await self._call(key, self.kv.get)
        if raw is None:
            return ()
        items = compose(_require_list(key), _decode(key))(raw)

        records = []
        for index, item in enumerate(items):
            result = parse(item)
            if result.is_left():
                logger.warning("Skipping invalid %s record at index %s: %s", key, index, result.get_error()["message"])
                continue
            records.append(result.get_or_else(None))
        return tuple(records)

    async def _save(self, key: str, data: Any) -> None:
        await self._call(key, self.kv.set, _encode(data))

    async def read_raw(self, key: str) -> Optional[bytes]:
        """The stored blob exactly as persisted, or None when the key is absent."""
        return await self._call(key, self.kv.get)

    async def restore_raw(self, key: str, raw: Optional[bytes]) -> None:
        """Put back a blob captured with `read_raw`."""
        if raw is None:
            await self._call(key, self.kv.remove)
        else:
            await self._call(key, self.kv.set, raw)

    async def load_expenses(self) -> Tuple[TransactionRecord, ...]:
        return await self._load(EXPENSES, parse_expense)

    async def load_incomes(self) -> Tuple[TransactionRecord, ...]:
        return await self._load(INCOMES, parse_income)

    async def load_budgets(self) -> Tuple[BudgetAllocation, ...]:
        return await self._load(BUDGETS, parse_budget)

    async def load_rules(self) -> Tuple[RecurringRule, ...]:
        return await self._load(RECURRING, parse_rule)

    async def load_settings(self) -> NotificationSettings:
        raw = await self._call(SETTINGS, self.kv.get)
        if raw is None:
            return NotificationSettings()
        result = pipe(raw, _decode(SETTINGS), parse_settings)
        if result.is_left():
            logger.warning("Ignoring invalid notification settings: %s", result.get_error()["message"])
            return NotificationSettings()
        return result.get_or_else(NotificationSettings())

    async def load_all(self):
        """Expenses, incomes, budgets, rules and settings; distinct keys are read concurrently."""
        return await asyncio.gather(
            self.load_expenses(),
            self.load_incomes(),
            self.load_budgets(),
            self.load_rules(),
            self.load_settings(),
        )

    async def save_expenses(self, expenses: Sequence[TransactionRecord]) -> None:
        await self._save(EXPENSES, [transaction_to_dict(e) for e in expenses])

    async def save_incomes(self, incomes: Sequence[TransactionRecord]) -> None:
        await self._save(INCOMES, [transaction_to_dict(i, include_category=False) for i in incomes])

    async def save_budgets(self, budgets: Sequence[BudgetAllocation]) -> None:
        await self._save(BUDGETS, [budget_to_dict(b) for b in budgets])

    async def save_rules(self, rules: Sequence[RecurringRule]) -> None:
        await self._save(RECURRING, [rule_to_dict(r) for r in rules])

    async def save_settings(self, settings: NotificationSettings) -> None:
        await self._save(SETTINGS, settings_to_dict(settings))
