"""
Main Orchestrator Module

This module orchestrates one run of the invoice reminder job:
1. Select open invoices due a reminder (fatal on failure)
2. For each invoice, strictly in sequence:
   resolve recipient -> compose email -> dispatch -> record state
3. Summarize the per-invoice outcomes

Each invoice produces exactly one ReminderOutcome. A failure on one invoice is
recorded and the run moves on to the next one; only a failed bulk read aborts.

This is orchestration/glue code - business logic lives in the individual modules.
"""

import time
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from reminders.config import ReminderConfig
from reminders.data_store import InvoiceStore, InvoiceStoreError, MySQLInvoiceStore
from reminders.email_body_generator import ReminderCompositionError, compose_reminder
from reminders.email_sender import EmailSender, build_email_sender
from reminders.invoice_selector import select_invoices, today_utc
from reminders.logger import get_logger
from reminders.models import (
    Failed,
    Invoice,
    ReminderOutcome,
    RunResult,
    RunSummary,
    Sent,
    SkippedCapReached,
    SkippedNoEmail,
    SkippedNotDue,
)
from reminders.recipient_resolver import resolve_recipient
from reminders.state_updater import STATE_INCONSISTENT_MARKER, record_successful_send

logger = get_logger(__name__)

OUTCOME_KEYS = {
    Sent: "sent",
    SkippedNoEmail: "skipped_no_email",
    SkippedNotDue: "skipped_not_due",
    SkippedCapReached: "skipped_cap_reached",
    Failed: "failed",
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def summarize_outcomes(outcomes: Iterable[ReminderOutcome]) -> RunSummary:
    """
    Reduce per-invoice outcomes into the run summary.

    reminders_sent counts every Sent outcome, including those whose state
    update failed (the email did go out); those are also counted in
    state_update_failures.
    """
    outcomes = list(outcomes)
    counts: Dict[str, int] = {key: 0 for key in OUTCOME_KEYS.values()}
    state_update_failures = 0

    for outcome in outcomes:
        counts[OUTCOME_KEYS[type(outcome)]] += 1
        if isinstance(outcome, Sent) and not outcome.state_recorded:
            state_update_failures += 1

    return RunSummary(
        reminders_sent=counts["sent"],
        counts=counts,
        state_update_failures=state_update_failures,
        outcomes=outcomes,
    )


class ReminderDispatcher:
    """
    Runs the reminder pipeline with explicitly injected collaborators.

    Args:
        config: Runtime configuration (policy values, pacing, signature)
        store: Invoice data store
        sender: Email sender for the configured provider
        clock: Returns the current time (default: UTC now)
        sleep: Pause function used for rate-limit pacing (default: time.sleep)
    """

    def __init__(
        self,
        config: ReminderConfig,
        store: InvoiceStore,
        sender: EmailSender,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Optional[Callable[[float], None]] = None
    ):
        self.config = config
        self.store = store
        self.sender = sender
        self._clock = clock or _utc_now
        self._sleep = sleep or time.sleep
        self._dispatches_this_run = 0

    def _pace_dispatch(self) -> None:
        if self._dispatches_this_run > 0 and self.config.send_delay_seconds > 0:
            logger.debug(f"Waiting {self.config.send_delay_seconds} seconds before next email")
            self._sleep(self.config.send_delay_seconds)
        self._dispatches_this_run += 1

    def process_invoice(self, invoice: Invoice, now: datetime) -> ReminderOutcome:
        """
        Run resolve -> compose -> dispatch -> record for one eligible invoice.

        Returns:
            The outcome for this invoice. Expected failures are returned as
            outcomes; unexpected exceptions propagate to run(), which records them.
        """
        today = today_utc(now)

        # Resolving
        success, recipient, error = resolve_recipient(self.store, invoice.user_id)
        if not success:
            logger.info(f"Invoice {invoice.id}: skipped, no contactable recipient ({error})")
            return SkippedNoEmail(invoice_id=invoice.id)

        # Composing
        try:
            subject, html_body = compose_reminder(
                invoice,
                recipient,
                today,
                company_name=self.config.company_name,
                reminder_cap=self.config.reminder_cap,
            )
        except ReminderCompositionError as e:
            reason = f"composition failed: {str(e)}"
            logger.error(f"Invoice {invoice.id}: {reason}")
            return Failed(invoice_id=invoice.id, reason=reason)

        # Dispatching
        self._pace_dispatch()
        result = self.sender.send(recipient.email, subject, html_body)
        if not result.success:
            reason = f"dispatch failed: {result.error}"
            logger.error(f"Invoice {invoice.id}: {reason}")
            return Failed(invoice_id=invoice.id, reason=reason)

        # Updating
        sent_at = self._clock()
        recorded, update_error = record_successful_send(self.store, invoice.id, sent_at)
        if not recorded:
            logger.error(
                f"{STATE_INCONSISTENT_MARKER}: invoice {invoice.id} reminder was sent at "
                f"{sent_at.isoformat()} but its state was not recorded: {update_error}. "
                f"The invoice may receive an extra reminder on the next run."
            )
            return Sent(invoice_id=invoice.id, state_recorded=False, provider_message_id=result.provider_message_id)

        logger.info(f"Invoice {invoice.id}: reminder {invoice.reminder_count + 1} sent")
        return Sent(invoice_id=invoice.id, provider_message_id=result.provider_message_id)

    def run(self, now: Optional[datetime] = None) -> RunResult:
        """
        Execute one complete reminder run.

        Args:
            now: Reference time for the due window (default: clock())

        Returns:
            RunResult with the summary on success, or the error message if the
            invoice selection failed
        """
        if now is None:
            now = self._clock()
        self._dispatches_this_run = 0

        logger.info("=" * 70)
        logger.info("Starting Invoice Reminder Run")
        logger.info("=" * 70)
        logger.info(f"Run time: {now.isoformat()}")
        logger.info(f"Reminder cap: {self.config.reminder_cap}, due window: {self.config.due_window_days} days")
        logger.info("=" * 70)

        # Step 1: Selecting
        logger.info("STEP 1: Selecting invoices...")
        try:
            selection = select_invoices(
                self.store,
                now,
                reminder_cap=self.config.reminder_cap,
                due_window_days=self.config.due_window_days,
            )
        except InvoiceStoreError as e:
            error_msg = f"Invoice selection failed: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return RunResult(success=False, error=error_msg)
        except Exception as e:
            error_msg = f"Unexpected error during invoice selection: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return RunResult(success=False, error=error_msg)

        logger.info(f"✓ Step 1 completed: {len(selection.eligible)} eligible, {len(selection.skipped)} skipped by policy")

        # Step 2: Per-invoice pipeline
        logger.info("STEP 2: Sending reminders...")
        outcomes: List[ReminderOutcome] = list(selection.skipped)

        for i, invoice in enumerate(selection.eligible):
            logger.info(f"  Processing invoice {invoice.id} ({i + 1}/{len(selection.eligible)})")
            try:
                outcome = self.process_invoice(invoice, now)
            except Exception as e:
                reason = f"unexpected error: {type(e).__name__}"
                logger.error(f"Invoice {invoice.id}: {reason}")
                logger.debug(f"Invoice {invoice.id}: unexpected error detail", exc_info=True)
                outcome = Failed(invoice_id=invoice.id, reason=reason)
            outcomes.append(outcome)

        logger.info("✓ Step 2 completed")

        # Step 3: Summarizing
        summary = summarize_outcomes(outcomes)

        logger.info("=" * 70)
        logger.info("Invoice Reminder Run completed")
        logger.info("=" * 70)
        logger.info(f"Reminders sent: {summary.reminders_sent}")
        for key, count in summary.counts.items():
            logger.info(f"  {key}: {count}")
        if summary.state_update_failures:
            logger.error(
                f"{STATE_INCONSISTENT_MARKER}: {summary.state_update_failures} reminder(s) sent without recorded state"
            )
        logger.info("=" * 70)

        return RunResult(success=True, summary=summary)


def run_invoice_reminders(
    config: Optional[ReminderConfig] = None,
    now: Optional[datetime] = None
) -> RunResult:
    """
    Build the production collaborators from configuration and run once.

    Args:
        config: Runtime configuration (default: ReminderConfig.from_env())
        now: Reference time (default: current UTC time)

    Returns:
        RunResult of the run
    """
    if config is None:
        config = ReminderConfig.from_env()

    store = MySQLInvoiceStore(config, reminder_cap=config.reminder_cap)
    sender = build_email_sender(config)
    try:
        return ReminderDispatcher(config, store, sender).run(now=now)
    finally:
        close = getattr(sender, "close", None)
        if close is not None:
            close()
