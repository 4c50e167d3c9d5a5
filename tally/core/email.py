"""Email sending via the ZeptoMail REST API.

Single HTTP POST per magic link. The gateway only receives the finished
URL; it never sees how the token was generated or stored.
"""

import html
import logging

import httpx

from tally.core.config import settings

logger = logging.getLogger(__name__)

_ZEPTOMAIL_API_URL = "https://api.zeptomail.com/v1.1/email"
_ZEPTOMAIL_TIMEOUT = 10.0
_AUTH_SCHEME = "Zoho-enczapikey"


class NotificationError(Exception):
    """The email provider did not accept the message."""


def _auth_header(api_key: str) -> str:
    """Build Authorization header from a raw key or a full header value."""
    raw = api_key.strip()
    if not raw:
        raise NotificationError("ZEPTOMAIL_API_KEY is not set")
    if raw.lower().startswith(_AUTH_SCHEME.lower() + " "):
        return raw
    return f"{_AUTH_SCHEME} {raw}"


def _render_body(magic_link: str, ttl_minutes: int) -> str:
    link = html.escape(magic_link, quote=True)
    return (
        "<!DOCTYPE html>\n"
        '<html><head><meta charset="utf-8"></head>\n'
        '<body style="font-family: sans-serif; line-height: 1.5;">\n'
        "  <p>Click the link below to sign in to Tally:</p>\n"
        f'  <p><a href="{link}" style="color: #1DB36B;">Sign in to Tally</a></p>\n'
        "  <p>If you didn't request this, you can ignore this email.</p>\n"
        '  <p style="color: #666; font-size: 12px;">'
        f"This link expires in {ttl_minutes} minutes.</p>\n"
        "</body></html>"
    )


class ZeptoMailGateway:
    """Notification gateway backed by ZeptoMail.

    Args:
        api_key: Send Mail token, with or without the auth scheme prefix.
        from_address: Verified sender address.
        from_name: Display name of the sender.
        transport: Optional httpx transport (tests inject a MockTransport).
    """

    def __init__(
        self,
        *,
        api_key: str,
        from_address: str,
        from_name: str = "TALLY",
        ttl_minutes: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._from_address = from_address.strip()
        self._from_name = from_name.strip()
        self._ttl_minutes = ttl_minutes
        self._transport = transport

    async def send_magic_link(self, *, to_email: str, magic_link: str) -> None:
        """Send a sign-in email containing ``magic_link``.

        Raises:
            NotificationError: Missing credentials, transport failure or a
                non-2xx response from the provider.
        """
        if not self._from_address:
            raise NotificationError("ZEPTOMAIL_FROM_EMAIL is not set")

        body = {
            "from": {"address": self._from_address, "name": self._from_name},
            "to": [{"email_address": {"address": to_email, "name": to_email}}],
            "subject": "Sign in to Tally",
            "htmlbody": _render_body(magic_link, self._ttl_minutes),
        }

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.post(
                    _ZEPTOMAIL_API_URL,
                    headers={"Authorization": _auth_header(self._api_key)},
                    json=body,
                    timeout=_ZEPTOMAIL_TIMEOUT,
                )
        except httpx.HTTPError as exc:
            raise NotificationError(f"ZeptoMail request failed: {exc}") from exc

        if resp.is_error:
            logger.error(
                "ZeptoMail API error status=%s body=%s", resp.status_code, resp.text
            )
            raise NotificationError(f"ZeptoMail API error: {resp.status_code}")


def get_email_gateway() -> ZeptoMailGateway:
    """Build the gateway from settings (FastAPI dependency)."""
    return ZeptoMailGateway(
        api_key=settings.zeptomail_api_key.get_secret_value(),
        from_address=settings.zeptomail_from_email,
        from_name=settings.zeptomail_from_name,
        ttl_minutes=settings.magic_link_ttl_minutes,
    )
