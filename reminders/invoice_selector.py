"""
Invoice Selector Module

This module decides which open invoices receive a reminder in this run.

Logic:
- Bulk read all open invoices from the data store
- days_until_due = due_date - today (calendar days, UTC)
- Eligible: status == 'open' AND reminder_count < cap AND days_until_due <= window
- Overdue invoices (negative days_until_due) are always within the window
- Invoices without a due date are treated as not due

The policy works on a DataFrame so it can be tested without a database.
A failed bulk read is the only fatal error of a run.
"""

from datetime import date, datetime, timezone
from typing import List, Optional

import pandas as pd

from reminders.config import DUE_WINDOW_DAYS, OPEN_STATUS, REMINDER_CAP
from reminders.data_store import InvoiceStore
from reminders.logger import get_logger
from reminders.models import Invoice, InvoiceSelection, SkippedCapReached, SkippedNotDue

logger = get_logger(__name__)

POLICY_COLUMNS = ['status', 'reminder_count', 'due_date']


def today_utc(now: datetime) -> date:
    """Calendar date of `now` in UTC. Naive datetimes are assumed to be UTC."""
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(timezone.utc).date()


def invoices_to_dataframe(invoices: List[Invoice]) -> pd.DataFrame:
    """Build the policy DataFrame. The row index matches the position in `invoices`."""
    if not invoices:
        return pd.DataFrame(columns=POLICY_COLUMNS)

    return pd.DataFrame(
        {
            'status': [inv.status for inv in invoices],
            'reminder_count': [inv.reminder_count for inv in invoices],
            'due_date': [inv.due_date for inv in invoices],
        }
    )


def apply_selection_policy(
    invoices_df: pd.DataFrame,
    today: date,
    reminder_cap: Optional[int] = None,
    due_window_days: Optional[int] = None
) -> pd.DataFrame:
    """
    Annotate invoices with the selection decision.

    Args:
        invoices_df: DataFrame with columns ['status', 'reminder_count', 'due_date']
        today: Reference date for the due window
        reminder_cap: Maximum reminders per invoice (default: from config)
        due_window_days: Days ahead of the due date an invoice becomes eligible (default: from config)

    Returns:
        Copy of invoices_df with added columns:
        - days_until_due: Int64 (NA when due_date is missing)
        - is_open, cap_reached, not_due: bool
        - eligible: bool
    """
    if reminder_cap is None:
        reminder_cap = REMINDER_CAP
    if due_window_days is None:
        due_window_days = DUE_WINDOW_DAYS

    missing_cols = [col for col in POLICY_COLUMNS if col not in invoices_df.columns]
    if missing_cols:
        raise ValueError(f"Invoice DataFrame missing required columns: {missing_cols}")

    df = invoices_df.copy()

    due = pd.to_datetime(df['due_date'], errors='coerce')
    df['days_until_due'] = (due - pd.Timestamp(today)).dt.days.astype('Int64')

    counts = pd.to_numeric(df['reminder_count'], errors='coerce').fillna(0)

    df['is_open'] = df['status'].astype(str).str.strip().str.lower() == OPEN_STATUS
    df['cap_reached'] = counts >= reminder_cap
    df['not_due'] = ~(df['days_until_due'] <= due_window_days).fillna(False).astype(bool)
    df['eligible'] = df['is_open'] & ~df['cap_reached'] & ~df['not_due']

    return df


def select_invoices(
    store: InvoiceStore,
    now: datetime,
    reminder_cap: Optional[int] = None,
    due_window_days: Optional[int] = None
) -> InvoiceSelection:
    """
    Read open invoices and split them into eligible and skipped.

    Non-open rows returned by the store are dropped without an outcome;
    they are never selected.

    Args:
        store: Invoice data store
        now: Current time of the run
        reminder_cap: Maximum reminders per invoice (default: from config)
        due_window_days: Eligibility window in days (default: from config)

    Returns:
        InvoiceSelection with eligible invoices and skip outcomes

    Raises:
        InvoiceStoreError: if the bulk read fails (fatal for the run)
    """
    invoices = store.fetch_open_invoices()
    today = today_utc(now)

    logger.info(f"Applying selection policy to {len(invoices)} invoice(s) as of {today.isoformat()}")

    if not invoices:
        return InvoiceSelection()

    decisions = apply_selection_policy(
        invoices_to_dataframe(invoices),
        today=today,
        reminder_cap=reminder_cap,
        due_window_days=due_window_days,
    )

    eligible = []
    skipped = []
    for position, row in decisions.iterrows():
        invoice = invoices[position]
        if not row['is_open']:
            logger.debug(f"Invoice {invoice.id} has status '{invoice.status}' - not selected")
            continue
        if row['cap_reached']:
            skipped.append(SkippedCapReached(invoice_id=invoice.id, reminder_count=invoice.reminder_count))
            continue
        if row['not_due']:
            days = row['days_until_due']
            skipped.append(SkippedNotDue(invoice_id=invoice.id, days_until_due=None if pd.isna(days) else int(days)))
            continue
        eligible.append(invoice)

    logger.info(f"Selected {len(eligible)} invoice(s) for reminders, {len(skipped)} skipped by policy")
    return InvoiceSelection(eligible=eligible, skipped=skipped)
