"""
Consumption Ledger — Typed ledger errors

Every expected, caller-recoverable failure of the ledger is a subclass of
LedgerError with a machine-readable ``code`` and structured attributes.
The API layer maps codes to HTTP statuses; anything that is not a
LedgerError is an internal failure and propagates untouched.

    LedgerError
    +-- ValidationError
    +-- NotFoundError
    +-- InsufficientStockError
    +-- QuotaExceededError
    +-- NegativeStockError
    +-- ConcurrencyConflictError
    +-- DuplicateNameError
    +-- ConsumptionTypeInUseError
"""
from typing import Any


class LedgerError(Exception):
    code: str = "LEDGER_ERROR"
    retryable: bool = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code}


class ValidationError(LedgerError):
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "field": self.field}


class NotFoundError(LedgerError):
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.replace('_', ' ').capitalize()} not found.")

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "entity": self.entity, "entity_id": self.entity_id}


class InsufficientStockError(LedgerError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, item_id: str, requested: int, available: int):
        self.item_id = item_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock: requested={requested}, available={available}."
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "item_id": self.item_id,
            "requested": self.requested,
            "available": self.available,
        }


class QuotaExceededError(LedgerError):
    code = "QUOTA_EXCEEDED"

    def __init__(self, limit: int, period: str, current_total: int, requested: int):
        self.limit = limit
        self.period = period
        self.current_total = current_total
        self.requested = requested
        super().__init__(
            f"Exceeds the limit of {limit} per {period.lower()} "
            f"(already taken {current_total}, requested {requested})."
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "limit": self.limit,
            "period": self.period,
            "current_total": self.current_total,
            "requested": self.requested,
        }


class NegativeStockError(LedgerError):
    code = "NEGATIVE_STOCK"

    def __init__(self, item_id: str, current: int, change: int):
        self.item_id = item_id
        self.current = current
        self.change = change
        self.attempted = current + change
        super().__init__(
            f"Stock cannot be negative: {current} {change:+d} = {self.attempted}."
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "item_id": self.item_id,
            "current": self.current,
            "change": self.change,
            "attempted": self.attempted,
        }


class ConcurrencyConflictError(LedgerError):
    """Optimistic lock retries exhausted; the caller may try again."""

    code = "CONCURRENCY_CONFLICT"
    retryable = True

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(
            f"Concurrent update conflict in {operation} after {attempts} attempts. Please retry."
        )

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "attempts": self.attempts, "retryable": True}


class DuplicateNameError(LedgerError):
    code = "DUPLICATE_NAME"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Consumption type '{name}' already exists.")


class ConsumptionTypeInUseError(LedgerError):
    code = "TYPE_IN_USE"

    def __init__(self, type_id: str, item_count: int):
        self.type_id = type_id
        self.item_count = item_count
        super().__init__(
            f"Consumption type is still used by {item_count} item(s) and cannot be deleted."
        )

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "type_id": self.type_id, "item_count": self.item_count}
