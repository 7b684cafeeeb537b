"""
Business logic services for Identity Reconciliation API
Contains the identity reconciliation core: contact store, group
resolution, merge decisions, response building and identifier locking.
"""

from .contact_store import ContactStore
from .errors import (
    ReconciliationError,
    ContactValidationError,
    StoreUnavailable,
    InvariantViolation,
    ConcurrencyConflict,
)
from .group_resolver import GroupResolver, IdentityGroup
from .identity_service import IdentityService
from .locks import IdentifierLocks
from .merge_decider import MergeDecider, Plan
from .response_builder import ResponseBuilder

__all__ = [
    "ContactStore",
    "ReconciliationError",
    "ContactValidationError",
    "StoreUnavailable",
    "InvariantViolation",
    "ConcurrencyConflict",
    "GroupResolver",
    "IdentityGroup",
    "IdentityService",
    "IdentifierLocks",
    "MergeDecider",
    "Plan",
    "ResponseBuilder",
]
