"""Immutability enforcement for financial records using SQLAlchemy events."""

import logging
from datetime import UTC, datetime

from sqlalchemy import event, inspect

from tripzeo.core.exceptions import ValidationError
from tripzeo.domain.transaction_state import assert_transaction_transition

logger = logging.getLogger(__name__)

MUTABLE_TRANSACTION_FIELDS = frozenset({"status"})


class ImmutabilityViolationError(ValidationError):
    """Raised when attempting to modify immutable financial records."""

    def __init__(self, model_name: str, operation: str, record_id: str):
        self.model_name = model_name
        self.operation = operation
        self.record_id = record_id
        super().__init__(
            f"Immutability violation: Cannot {operation} {model_name} record {record_id}. "
            "Financial records are append-only."
        )


def _log_immutability_violation(model_name: str, operation: str, record_id: str) -> None:
    """Log immutability violation for audit purposes."""
    logger.error(
        f"IMMUTABILITY_VIOLATION: Attempted to {operation} {model_name} "
        f"record_id={record_id} at {datetime.now(UTC).isoformat()}"
    )


def _prevent_transaction_update(mapper, connection, target) -> None:
    """Allow only a pending -> completed | reversed status flip."""
    state = inspect(target)
    changed = {
        attr.key for attr in state.attrs if attr.history.has_changes()
    }
    illegal = changed - MUTABLE_TRANSACTION_FIELDS
    if illegal:
        operation = f"UPDATE ({', '.join(sorted(illegal))})"
        _log_immutability_violation("FinancialTransaction", operation, str(target.id))
        raise ImmutabilityViolationError("FinancialTransaction", operation, str(target.id))

    history = state.attrs.status.history
    if history.deleted:
        assert_transaction_transition(history.deleted[0], target.status)


def _prevent_transaction_delete(mapper, connection, target) -> None:
    _log_immutability_violation("FinancialTransaction", "DELETE", str(target.id))
    raise ImmutabilityViolationError("FinancialTransaction", "DELETE", str(target.id))


def register_immutability_enforcement() -> None:
    """Register SQLAlchemy event listeners for immutability enforcement.

    Safe to call more than once.
    """
    from tripzeo.models.financial import FinancialTransaction

    if not event.contains(FinancialTransaction, "before_update", _prevent_transaction_update):
        event.listen(FinancialTransaction, "before_update", _prevent_transaction_update)
    if not event.contains(FinancialTransaction, "before_delete", _prevent_transaction_delete):
        event.listen(FinancialTransaction, "before_delete", _prevent_transaction_delete)

    logger.info("Immutability enforcement registered for financial records")
