from datetime import datetime
from typing import Callable, Iterable, Iterator, Tuple

from ledger.domain import TransactionRecord

Predicate = Callable[[TransactionRecord], bool]


def month_window(month: int, year: int) -> Tuple[datetime, datetime]:
    """[first instant of month, first instant of next month), month is 0-11."""
    start = datetime(year, month + 1, 1)
    if month == 11:
        end = datetime(year + 1, 1, 1)
    else:
        end = datetime(year, month + 2, 1)
    return start, end


def shift_month(month: int, year: int, delta: int) -> Tuple[int, int]:
    index = year * 12 + month + delta
    return index % 12, index // 12


def by_category(category: str) -> Predicate:
    def _filter(t: TransactionRecord) -> bool:
        return t.category == category

    return _filter


def by_date_window(start: datetime, end: datetime) -> Predicate:
    def _filter(t: TransactionRecord) -> bool:
        return start <= t.date < end

    return _filter


def in_month(month: int, year: int) -> Predicate:
    return by_date_window(*month_window(month, year))


def all_of(*preds: Predicate) -> Predicate:
    def _filter(t: TransactionRecord) -> bool:
        return all(p(t) for p in preds)

    return _filter


def iter_transactions(
    trans: Iterable[TransactionRecord], pred: Predicate
) -> Iterator[TransactionRecord]:
    for t in trans:
        if pred(t):
            yield t
