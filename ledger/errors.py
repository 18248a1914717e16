"""Typed exceptions raised at the ledger's I/O and edit boundaries.

The pure core (balance, reconciler, scheduler, alerts) never raises for
validated input; these only come out of the store adapter and the editing
service.
"""

from typing import Optional, Sequence


class LedgerError(Exception):
    code = "ledger_error"


class StoreError(LedgerError):
    """A read or write against the key-value store failed. Transient."""

    code = "store_error"

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class StoreTimeoutError(StoreError):
    code = "store_timeout"


class ValidationError(LedgerError):
    """Malformed data at the store or edit boundary.

    errors: the structured error dicts produced by the record validators.
    """

    code = "validation_error"

    def __init__(self, message: str, errors: Sequence[dict] = ()):
        super().__init__(message)
        self.errors = list(errors)


class RecordNotFoundError(LedgerError):
    code = "record_not_found"

    def __init__(self, collection: str, record_id: str):
        super().__init__(f"No {collection} record with ID {record_id}")
        self.collection = collection
        self.record_id = record_id


class BudgetConflictError(LedgerError):
    """The category already has an allocation and overwrite was not requested."""

    code = "budget_conflict"

    def __init__(self, category: str):
        super().__init__(f"A budget for category {category} already exists")
        self.category = category
