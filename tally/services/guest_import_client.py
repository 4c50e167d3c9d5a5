"""HTTP import target for guest reconciliation.

Posts each batch to ``POST /api/v1/guest-import`` (transactions) or
``POST /api/v1/guest-import/inventory`` with the session cookie. Any non-2xx
response fails the batch, which in turn fails the whole reconciliation and
leaves guest data in place.
"""

import logging

import httpx
from pydantic import BaseModel

from tally.core.config import settings
from tally.schemas.guest_import import (
    GuestImportRequest,
    GuestImportRow,
    GuestInventoryImportRequest,
    GuestInventoryRow,
)

logger = logging.getLogger(__name__)

GUEST_IMPORT_PATH = "/api/v1/guest-import"
GUEST_INVENTORY_IMPORT_PATH = "/api/v1/guest-import/inventory"

_TIMEOUT = 15.0


class GuestImportError(Exception):
    """The server did not accept an import batch.

    Attributes:
        status_code: HTTP status, or None for transport failures.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class HttpImportTarget:
    """ImportTarget that talks to the Tally API over HTTP.

    Args:
        base_url: API origin, e.g. ``https://api.tallybook.app``.
        session_token: Value of the session cookie.
        cookie_name: Session cookie name (defaults to settings).
        transport: Optional httpx transport (tests inject a MockTransport).
    """

    def __init__(
        self,
        *,
        base_url: str,
        session_token: str,
        cookie_name: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._cookies = {cookie_name or settings.auth_cookie_name: session_token}
        self._transport = transport

    async def push_batch(self, *, business_id: str, rows: list[GuestImportRow]) -> None:
        """Send one batch of transactions.

        Raises:
            GuestImportError: Transport failure or non-2xx response.
        """
        body = GuestImportRequest.model_validate(
            {"business_id": business_id, "transactions": rows}
        )
        await self._post(GUEST_IMPORT_PATH, body)

    async def push_inventory_batch(
        self, *, business_id: str, rows: list[GuestInventoryRow]
    ) -> None:
        """Send one batch of inventory items.

        Raises:
            GuestImportError: Transport failure or non-2xx response.
        """
        body = GuestInventoryImportRequest.model_validate(
            {"business_id": business_id, "items": rows}
        )
        await self._post(GUEST_INVENTORY_IMPORT_PATH, body)

    async def _post(self, path: str, body: BaseModel) -> None:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                cookies=self._cookies,
                transport=self._transport,
            ) as client:
                resp = await client.post(
                    path,
                    content=body.model_dump_json(),
                    headers={"Content-Type": "application/json"},
                    timeout=_TIMEOUT,
                )
        except httpx.HTTPError as exc:
            raise GuestImportError(f"Guest import request failed: {exc}") from exc

        if resp.is_error:
            logger.warning(
                "Guest import rejected path=%s status=%s", path, resp.status_code
            )
            raise GuestImportError(
                f"Guest import rejected: {resp.status_code}",
                status_code=resp.status_code,
            )
