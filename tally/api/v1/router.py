"""API v1 router aggregator.

All v1 endpoint routers are included here, mounted at /api/v1.
"""

from fastapi import APIRouter

from tally.api.v1 import auth_magic_link, guest_import, session

router = APIRouter()

# =============================================================================
# Authentication
# =============================================================================

router.include_router(auth_magic_link.router, prefix="/auth", tags=["auth"])

# =============================================================================
# Session
# =============================================================================

router.include_router(session.router, prefix="/session", tags=["session"])

# =============================================================================
# Guest Reconciliation
# =============================================================================

router.include_router(
    guest_import.router, prefix="/guest-import", tags=["guest-import"]
)
