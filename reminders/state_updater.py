"""
Reminder State Updater Module

Persists the bookkeeping for a reminder that was confirmed sent:
reminder_sent_at = sent_at and reminder_count += 1, in one atomic update.

Must only be called after a successful dispatch. A failure here is not retried:
the email is out but the cap counter did not move, so the invoice may receive
an extra reminder on the next run. Callers log it with STATE_INCONSISTENT_MARKER.
"""

from datetime import datetime
from typing import Optional, Tuple

from reminders.data_store import InvoiceStore
from reminders.logger import get_logger

logger = get_logger(__name__)

STATE_INCONSISTENT_MARKER = "REMINDER_STATE_INCONSISTENT"


def record_successful_send(
    store: InvoiceStore,
    invoice_id: str,
    sent_at: datetime
) -> Tuple[bool, Optional[str]]:
    """
    Record a sent reminder on the invoice.

    Args:
        store: Invoice data store
        invoice_id: Invoice that was reminded
        sent_at: Time of the successful dispatch

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    try:
        updated = store.record_reminder_sent(invoice_id, sent_at)
    except Exception as e:
        error_msg = f"Reminder state update failed for invoice {invoice_id}: {str(e)}"
        logger.debug(error_msg, exc_info=True)
        return False, error_msg

    if not updated:
        return False, f"Reminder state update matched no row for invoice {invoice_id} (missing or cap reached)"

    logger.debug(f"Recorded reminder for invoice {invoice_id} at {sent_at.isoformat()}")
    return True, None
