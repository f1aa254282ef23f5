import os
import tempfile
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

import pytest

os.environ.setdefault("REMINDER_LOGS_DIR", os.path.join(tempfile.gettempdir(), "invoice-reminder-test-logs"))
os.environ.setdefault("REMINDER_LOG_TO_FILE", "false")

from reminders.config import REMINDER_CAP, ReminderConfig  # noqa: E402
from reminders.data_store import InvoiceStoreError  # noqa: E402
from reminders.models import DispatchResult, Invoice, Recipient  # noqa: E402

NOW = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)
TODAY = NOW.date()
SENT_AT = datetime(2026, 3, 10, 8, 0, 5, tzinfo=timezone.utc)


def make_invoice(
    invoice_id: str = "inv-1",
    *,
    due_in_days: Optional[int] = 3,
    reminder_count: int = 0,
    status: str = "open",
    user_id: str = "user-1",
    amount: Optional[Decimal] = Decimal("1234.50"),
    payment_reference: str = "RF-2026-001",
) -> Invoice:
    return Invoice(
        id=invoice_id,
        user_id=user_id,
        amount=amount,
        due_date=None if due_in_days is None else TODAY + timedelta(days=due_in_days),
        payment_reference=payment_reference,
        status=status,
        reminder_sent_at=None,
        reminder_count=reminder_count,
    )


def make_recipient(user_id: str = "user-1", email: Optional[str] = "owner@example.com") -> Recipient:
    return Recipient(user_id=user_id, email=email, first_name="Dana", last_name="Reyes")


class FakeInvoiceStore:
    """In-memory store with the same cap-guarded update semantics as MySQLInvoiceStore."""

    def __init__(
        self,
        invoices: List[Invoice] = (),
        recipients: List[Recipient] = (),
        *,
        only_open: bool = True,
        reminder_cap: int = REMINDER_CAP,
    ):
        self.invoices: Dict[str, Invoice] = {inv.id: inv for inv in invoices}
        self.recipients: Dict[str, Recipient] = {r.user_id: r for r in recipients}
        self.only_open = only_open
        self.reminder_cap = reminder_cap
        self.fail_fetch = False
        self.fail_recipient_for = set()
        self.fail_update_for = set()
        self.updates: List[str] = []

    def fetch_open_invoices(self) -> List[Invoice]:
        if self.fail_fetch:
            raise InvoiceStoreError("connection refused")
        return [inv for inv in self.invoices.values() if not self.only_open or inv.status == "open"]

    def fetch_recipient(self, user_id: str) -> Optional[Recipient]:
        if user_id in self.fail_recipient_for:
            raise InvoiceStoreError("profile lookup timed out")
        return self.recipients.get(user_id)

    def record_reminder_sent(self, invoice_id: str, sent_at: datetime) -> bool:
        if invoice_id in self.fail_update_for:
            raise InvoiceStoreError("lost connection during update")
        invoice = self.invoices.get(invoice_id)
        if invoice is None or invoice.reminder_count >= self.reminder_cap:
            return False
        self.invoices[invoice_id] = replace(
            invoice, reminder_sent_at=sent_at, reminder_count=invoice.reminder_count + 1
        )
        self.updates.append(invoice_id)
        return True


class FakeEmailSender:
    def __init__(self):
        self.sent = []
        self.fail_for = {}
        self.raise_for = set()

    def send(self, to_email: str, subject: str, html_body: str) -> DispatchResult:
        if to_email in self.raise_for:
            raise RuntimeError("sender exploded")
        if to_email in self.fail_for:
            return DispatchResult(success=False, error=self.fail_for[to_email])
        self.sent.append((to_email, subject, html_body))
        return DispatchResult(success=True, provider_message_id=f"msg-{len(self.sent)}")


@pytest.fixture
def config():
    return ReminderConfig(send_delay_seconds=0, company_name="Acme Supplies")


@pytest.fixture
def sender():
    return FakeEmailSender()
