"""
Pydantic schemas for Identity Reconciliation API
Request/response models for the HTTP layer
"""

from .identify import (
    IdentifyRequest,
    ContactResponse,
    IdentifyResponse,
    ErrorResponse
)

__all__ = [
    "IdentifyRequest",
    "ContactResponse",
    "IdentifyResponse",
    "ErrorResponse"
]
