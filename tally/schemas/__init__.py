"""Pydantic request/response schemas for API endpoints."""

from tally.schemas.guest_import import (
    IMPORT_BATCH_SIZE,
    GuestImportRequest,
    GuestImportResult,
    GuestImportRow,
)
from tally.schemas.session import (
    NavigationDecisionBody,
    SessionInputsBody,
    SessionStatus,
    SessionUser,
)

__all__ = [
    # Guest import
    "IMPORT_BATCH_SIZE",
    "GuestImportRequest",
    "GuestImportResult",
    "GuestImportRow",
    # Session
    "NavigationDecisionBody",
    "SessionInputsBody",
    "SessionStatus",
    "SessionUser",
]
