"""
Error taxonomy for identity reconciliation
Each error says whether retrying the whole identify sequence can help
and which HTTP status the API layer should answer with.
"""

from typing import Optional

from sqlalchemy.exc import DBAPIError, SQLAlchemyError

# SQLSTATE codes PostgreSQL reports for conflicting concurrent transactions
SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"


class ReconciliationError(Exception):
    """Base class for every failure surfaced by the reconciliation core"""

    kind = "reconciliation_error"
    retryable = False
    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ContactValidationError(ReconciliationError):
    """Neither email nor phone number was supplied"""

    kind = "validation"
    status_code = 400


class StoreUnavailable(ReconciliationError):
    """The contact store could not complete an operation"""

    kind = "store_unavailable"
    status_code = 503


class InvariantViolation(ReconciliationError):
    """
    The stored identity graph breaks a structural rule (a group without a
    primary, a secondary linked to another secondary, a dangling link).
    Never repaired automatically.
    """

    kind = "invariant_violation"
    status_code = 500


class ConcurrencyConflict(ReconciliationError):
    """Another in-flight reconciliation touched the same identifiers or group"""

    kind = "concurrency_conflict"
    retryable = True
    status_code = 409


def _sqlstate(error: DBAPIError) -> Optional[str]:
    orig = error.orig
    for attribute in ("sqlstate", "pgcode"):
        code = getattr(orig, attribute, None)
        if code:
            return code
    return None


def translate_store_error(error: SQLAlchemyError, operation: str) -> ReconciliationError:
    """Map a SQLAlchemy failure onto the reconciliation taxonomy"""
    if isinstance(error, DBAPIError) and _sqlstate(error) in (SERIALIZATION_FAILURE, DEADLOCK_DETECTED):
        return ConcurrencyConflict(
            f"Conflicting concurrent update during {operation}",
            details={"operation": operation, "sqlstate": _sqlstate(error)}
        )
    return StoreUnavailable(
        f"Contact store failed during {operation}",
        details={"operation": operation, "cause": type(error).__name__}
    )
