"""
Recipient Resolver Module

Maps the owner of an invoice to a contactable email identity.

CRITICAL SAFETY:
- No PII logging (email addresses, names) - users are identified by id only
- Graceful fallback: any lookup failure means "no contactable recipient",
  never an exception that aborts the batch
"""

from typing import Optional, Tuple

from reminders.data_store import InvoiceStore
from reminders.logger import get_logger
from reminders.models import Recipient

logger = get_logger(__name__)


def is_contactable(email: Optional[str]) -> bool:
    """Basic email validation, same rule as the report recipient list."""
    if not email:
        return False
    email = email.strip()
    return bool(email) and '@' in email


def resolve_recipient(store: InvoiceStore, user_id: str) -> Tuple[bool, Optional[Recipient], Optional[str]]:
    """
    Resolve the recipient for an invoice owner.

    Args:
        store: Invoice data store
        user_id: Owning-user reference of the invoice

    Returns:
        Tuple of (success: bool, recipient: Optional[Recipient], error_message: Optional[str])
        - success: True only if a recipient with a usable email address was found
        - recipient: The resolved Recipient, or None
        - error_message: Reason the recipient is not contactable, None on success
    """
    if not user_id:
        return False, None, "Invoice has no owning user"

    try:
        recipient = store.fetch_recipient(user_id)
    except Exception as e:
        error_msg = f"Recipient lookup failed for user {user_id}: {str(e)}"
        logger.warning(error_msg, exc_info=True)
        return False, None, error_msg

    if recipient is None:
        error_msg = f"No profile found for user {user_id}"
        logger.info(error_msg)
        return False, None, error_msg

    if not is_contactable(recipient.email):
        error_msg = f"User {user_id} has no usable email address"
        logger.info(error_msg)
        return False, recipient, error_msg

    return True, recipient, None
