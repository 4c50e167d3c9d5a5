"""SQLAlchemy ORM models for Tally identity.

All models are exported from this module for convenient imports:
    from tally.models import User, MagicLinkToken, Business, ...

Models are organized by domain:
- user.py: User
- magic_link_token.py: MagicLinkToken (single-use sign-in tokens)
- business.py: Business, Transaction, InventoryItem (session signal + guest
  import targets)
"""

from tally.models.base import Base, TimestampMixin
from tally.models.business import Business, InventoryItem, Transaction
from tally.models.magic_link_token import MagicLinkToken
from tally.models.user import User

__all__ = [
    "Base",
    "Business",
    "InventoryItem",
    "MagicLinkToken",
    "TimestampMixin",
    "Transaction",
    "User",
]
