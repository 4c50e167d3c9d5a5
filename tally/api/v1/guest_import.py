"""Guest import endpoints.

POST /guest-import: write one batch of guest transactions into the
caller's active business.
POST /guest-import/inventory: same for guest inventory items. Clients send
inventory first so imported sales can point at their items.

Rows are upserted by ``client_ref`` so a batch that is re-sent after a
partial failure does not duplicate anything. A batch that repeats a
client_ref is rejected with VALIDATION_ERROR.
"""

import logging
import uuid

from fastapi import APIRouter

from tally.api.deps import Accounts, CurrentUserId
from tally.core.errors import NotFoundError
from tally.core.responses import DataResponse
from tally.schemas.guest_import import (
    GuestImportRequest,
    GuestImportResult,
    GuestInventoryImportRequest,
)
from tally.services.account_directory import AccountDirectory

logger = logging.getLogger(__name__)

router = APIRouter()


async def _owned_business_id(
    accounts: AccountDirectory, user_id: uuid.UUID, business_id: uuid.UUID
) -> uuid.UUID:
    business = await accounts.get_business(user_id)
    if business is None or business.id != business_id:
        raise NotFoundError("Business", str(business_id))
    return business.id


@router.post("")
async def import_guest_transactions(
    body: GuestImportRequest,
    user_id: CurrentUserId,
    accounts: Accounts,
) -> DataResponse[GuestImportResult]:
    """Import a batch of at most IMPORT_BATCH_SIZE guest transactions.

    Raises:
        NotFoundError: business_id is not the caller's active business.
    """
    business_id = await _owned_business_id(accounts, user_id, body.business_id)
    imported = await accounts.import_transactions(
        business_id=business_id, rows=body.transactions
    )
    logger.info("Imported %d guest transactions", imported)
    return DataResponse(data=GuestImportResult(imported=imported))


@router.post("/inventory")
async def import_guest_inventory(
    body: GuestInventoryImportRequest,
    user_id: CurrentUserId,
    accounts: Accounts,
) -> DataResponse[GuestImportResult]:
    """Import a batch of at most IMPORT_BATCH_SIZE guest inventory items.

    Raises:
        NotFoundError: business_id is not the caller's active business.
    """
    business_id = await _owned_business_id(accounts, user_id, body.business_id)
    imported = await accounts.import_inventory_items(
        business_id=business_id, rows=body.items
    )
    logger.info("Imported %d guest inventory items", imported)
    return DataResponse(data=GuestImportResult(imported=imported))
