"""
Data Structures for the Reminder Job

Invoice and Recipient mirror the rows read from the data store.
The ReminderOutcome variants describe what happened to one invoice in one run;
they are never persisted and only feed the run summary.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Union


@dataclass(frozen=True)
class Invoice:
    id: str
    user_id: str
    amount: Optional[Decimal]
    due_date: Optional[date]
    payment_reference: str
    status: str
    reminder_sent_at: Optional[datetime] = None
    reminder_count: int = 0


@dataclass(frozen=True)
class Recipient:
    user_id: str
    email: Optional[str]
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def display_name(self) -> Optional[str]:
        parts = [p.strip() for p in (self.first_name, self.last_name) if p and p.strip()]
        return " ".join(parts) or None


@dataclass(frozen=True)
class Sent:
    invoice_id: str
    # False when the email went out but reminder_count/reminder_sent_at could not be written
    state_recorded: bool = True
    provider_message_id: Optional[str] = None


@dataclass(frozen=True)
class SkippedNoEmail:
    invoice_id: str


@dataclass(frozen=True)
class SkippedNotDue:
    invoice_id: str
    days_until_due: Optional[int] = None


@dataclass(frozen=True)
class SkippedCapReached:
    invoice_id: str
    reminder_count: int


@dataclass(frozen=True)
class Failed:
    invoice_id: str
    reason: str


ReminderOutcome = Union[Sent, SkippedNoEmail, SkippedNotDue, SkippedCapReached, Failed]


@dataclass(frozen=True)
class DispatchResult:
    """Result of a single provider call. Never raised, always returned."""

    success: bool
    provider_message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class InvoiceSelection:
    """Open invoices split into those due a reminder and those skipped by policy."""

    eligible: List[Invoice] = field(default_factory=list)
    skipped: List[ReminderOutcome] = field(default_factory=list)


@dataclass(frozen=True)
class RunSummary:
    reminders_sent: int
    counts: Dict[str, int]
    state_update_failures: int
    outcomes: List[ReminderOutcome] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "remindersSent": self.reminders_sent,
            "counts": dict(self.counts),
            "stateUpdateFailures": self.state_update_failures,
        }


@dataclass(frozen=True)
class RunResult:
    success: bool
    summary: Optional[RunSummary] = None
    error: Optional[str] = None

    @property
    def reminders_sent(self) -> int:
        return self.summary.reminders_sent if self.summary else 0
