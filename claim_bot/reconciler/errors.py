"""Reconciler error taxonomy beyond the connector-level GitHub errors."""

from __future__ import annotations


class TriggerValidationError(ValueError):
    """A trigger payload is malformed or incomplete; only that trigger is aborted."""

    def __init__(self, message: str, reason_code: str = "invalid_trigger") -> None:
        super().__init__(message)
        self.reason_code = reason_code


class InvariantViolation(RuntimeError):
    """Durable state on an item is inconsistent and needs a maintainer."""

    def __init__(self, message: str, reason_code: str, number: int | None = None) -> None:
        super().__init__(message)
        self.reason_code = reason_code
        self.number = number
