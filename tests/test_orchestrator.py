import logging
from unittest.mock import MagicMock

from reminders.models import (
    Failed,
    Sent,
    SkippedCapReached,
    SkippedNoEmail,
    SkippedNotDue,
)
from reminders.orchestrator import ReminderDispatcher, summarize_outcomes
from reminders.state_updater import STATE_INCONSISTENT_MARKER

from conftest import NOW, SENT_AT, FakeInvoiceStore, make_invoice, make_recipient


def _dispatcher(config, store, sender, sleep=None):
    return ReminderDispatcher(config, store, sender, clock=lambda: SENT_AT, sleep=sleep or MagicMock())


def test_due_soon_invoice_is_sent_and_recorded(config, sender):
    store = FakeInvoiceStore([make_invoice(due_in_days=3, reminder_count=0)], [make_recipient()])

    result = _dispatcher(config, store, sender).run(now=NOW)

    assert result.success is True
    assert result.reminders_sent == 1
    assert result.summary.outcomes == [Sent(invoice_id="inv-1", provider_message_id="msg-1")]
    assert store.invoices["inv-1"].reminder_count == 1
    assert store.invoices["inv-1"].reminder_sent_at == SENT_AT
    assert len(sender.sent) == 1
    to_email, subject, _ = sender.sent[0]
    assert to_email == "owner@example.com"
    assert subject.startswith("Payment reminder: RF-2026-001")


def test_invoice_due_in_ten_days_is_not_sent(config, sender):
    store = FakeInvoiceStore([make_invoice(due_in_days=10)], [make_recipient()])

    result = _dispatcher(config, store, sender).run(now=NOW)

    assert result.success is True
    assert result.reminders_sent == 0
    assert result.summary.outcomes == [SkippedNotDue(invoice_id="inv-1", days_until_due=10)]
    assert sender.sent == []


def test_invoice_at_cap_is_excluded(config, sender):
    store = FakeInvoiceStore([make_invoice(due_in_days=-10, reminder_count=3)], [make_recipient()])

    result = _dispatcher(config, store, sender).run(now=NOW)

    assert result.reminders_sent == 0
    assert result.summary.counts["skipped_cap_reached"] == 1
    assert sender.sent == []
    assert store.invoices["inv-1"].reminder_count == 3


def test_recipient_without_email_is_skipped_and_run_continues(config, sender):
    store = FakeInvoiceStore(
        [make_invoice("no-email", user_id="user-a"), make_invoice("ok", user_id="user-b")],
        [make_recipient("user-a", email=None), make_recipient("user-b", email="b@example.com")],
    )

    result = _dispatcher(config, store, sender).run(now=NOW)

    assert result.summary.outcomes == [
        SkippedNoEmail(invoice_id="no-email"),
        Sent(invoice_id="ok", provider_message_id="msg-1"),
    ]
    assert [to for to, _, _ in sender.sent] == ["b@example.com"]
    assert store.invoices["no-email"].reminder_count == 0


def test_missing_profile_and_failed_lookup_are_skipped(config, sender):
    store = FakeInvoiceStore(
        [make_invoice("ghost", user_id="nobody"), make_invoice("flaky", user_id="user-f")],
        [make_recipient("user-f")],
    )
    store.fail_recipient_for.add("user-f")

    result = _dispatcher(config, store, sender).run(now=NOW)

    assert result.summary.counts["skipped_no_email"] == 2
    assert sender.sent == []


def test_dispatch_failure_leaves_state_unchanged(config, sender):
    store = FakeInvoiceStore(
        [make_invoice("bad", user_id="user-a", reminder_count=1), make_invoice("good", user_id="user-b")],
        [make_recipient("user-a", email="a@example.com"), make_recipient("user-b", email="b@example.com")],
    )
    sender.fail_for["a@example.com"] = "Email provider timed out after 10.0s"

    result = _dispatcher(config, store, sender).run(now=NOW)

    assert result.reminders_sent == 1
    assert result.summary.outcomes[0] == Failed(
        invoice_id="bad", reason="dispatch failed: Email provider timed out after 10.0s"
    )
    assert store.invoices["bad"].reminder_count == 1
    assert store.invoices["bad"].reminder_sent_at is None
    assert store.invoices["good"].reminder_count == 1
    assert store.updates == ["good"]


def test_selection_failure_is_fatal_and_nothing_is_sent(config, sender):
    store = FakeInvoiceStore([make_invoice()], [make_recipient()])
    store.fail_fetch = True

    result = _dispatcher(config, store, sender).run(now=NOW)

    assert result.success is False
    assert result.summary is None
    assert "connection refused" in result.error
    assert result.reminders_sent == 0
    assert sender.sent == []


def test_state_update_failure_is_counted_as_sent_and_logged(config, sender, caplog):
    store = FakeInvoiceStore([make_invoice()], [make_recipient()])
    store.fail_update_for.add("inv-1")

    with caplog.at_level(logging.ERROR):
        result = _dispatcher(config, store, sender).run(now=NOW)

    assert result.success is True
    assert result.reminders_sent == 1
    assert result.summary.state_update_failures == 1
    assert result.summary.outcomes == [Sent(invoice_id="inv-1", state_recorded=False, provider_message_id="msg-1")]
    assert store.invoices["inv-1"].reminder_count == 0
    assert any(STATE_INCONSISTENT_MARKER in record.getMessage() for record in caplog.records)


def test_composition_failure_skips_dispatch(config, sender):
    store = FakeInvoiceStore([make_invoice(amount=None)], [make_recipient()])

    result = _dispatcher(config, store, sender).run(now=NOW)

    outcome = result.summary.outcomes[0]
    assert isinstance(outcome, Failed)
    assert outcome.reason.startswith("composition failed")
    assert sender.sent == []


def test_unexpected_exception_is_isolated_to_one_invoice(config, sender):
    store = FakeInvoiceStore(
        [make_invoice("boom", user_id="user-a"), make_invoice("ok", user_id="user-b")],
        [make_recipient("user-a", email="a@example.com"), make_recipient("user-b", email="b@example.com")],
    )
    sender.raise_for.add("a@example.com")

    result = _dispatcher(config, store, sender).run(now=NOW)

    assert result.success is True
    assert result.summary.outcomes[0] == Failed(invoice_id="boom", reason="unexpected error: RuntimeError")
    assert result.summary.outcomes[1] == Sent(invoice_id="ok", provider_message_id="msg-1")
    assert store.invoices["boom"].reminder_count == 0


def test_reminder_count_never_exceeds_cap_over_many_runs(config, sender):
    store = FakeInvoiceStore([make_invoice(due_in_days=-1)], [make_recipient()])
    dispatcher = _dispatcher(config, store, sender)

    sent_per_run = [dispatcher.run(now=NOW).reminders_sent for _ in range(6)]

    assert sent_per_run == [1, 1, 1, 0, 0, 0]
    assert store.invoices["inv-1"].reminder_count == 3
    assert len(sender.sent) == 3


def test_dispatches_are_paced_by_send_delay(config, sender):
    config.send_delay_seconds = 1.5
    sleep = MagicMock()
    store = FakeInvoiceStore(
        [make_invoice(f"inv-{i}") for i in range(3)] + [make_invoice("far", due_in_days=30)],
        [make_recipient()],
    )

    _dispatcher(config, store, sender, sleep=sleep).run(now=NOW)

    assert sleep.call_count == 2
    sleep.assert_called_with(1.5)


def test_summarize_outcomes_counts_each_kind():
    summary = summarize_outcomes([
        Sent(invoice_id="a"),
        Sent(invoice_id="b", state_recorded=False),
        SkippedNoEmail(invoice_id="c"),
        SkippedNotDue(invoice_id="d", days_until_due=12),
        SkippedCapReached(invoice_id="e", reminder_count=3),
        Failed(invoice_id="f", reason="dispatch failed: HTTP 500"),
    ])

    assert summary.reminders_sent == 2
    assert summary.state_update_failures == 1
    assert summary.counts == {
        "sent": 2,
        "skipped_no_email": 1,
        "skipped_not_due": 1,
        "skipped_cap_reached": 1,
        "failed": 1,
    }
    assert summary.to_dict()["remindersSent"] == 2


def test_summarize_outcomes_of_empty_run():
    summary = summarize_outcomes([])

    assert summary.reminders_sent == 0
    assert set(summary.counts.values()) == {0}
