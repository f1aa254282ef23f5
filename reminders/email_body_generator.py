"""
Reminder Email Composer Module

This module renders the subject line and HTML body of an invoice payment reminder.
The email body includes:
- Greeting
- Amount, due date and payment reference
- Overdue / due-soon wording
- Reminder number (e.g. "reminder 2 of 3")
- Footer

Composition is a pure function of its inputs: no I/O, no logging.
All HTML is email-client safe (Gmail-compatible).
"""

import html
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from reminders.config import DATE_FORMAT_DISPLAY, DEFAULT_COMPANY_NAME, REMINDER_CAP
from reminders.models import Invoice, Recipient


class ReminderCompositionError(ValueError):
    """Raised when an invoice or recipient is too malformed to compose a reminder."""


def format_date_for_email(date_value: date) -> str:
    """
    Format date for email display (DD MMM YYYY).

    Example: "15 Jan 2024"
    """
    return date_value.strftime(DATE_FORMAT_DISPLAY)


def format_amount_for_email(value) -> str:
    """
    Format an amount with thousand separators and 2 decimal places.

    Example: Decimal("1234.5") -> "1,234.50"

    Raises:
        ReminderCompositionError: if value is missing or not numeric
    """
    if value is None or isinstance(value, bool):
        raise ReminderCompositionError("Invoice amount is missing")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ReminderCompositionError(f"Invoice amount is not numeric: {value!r}")
    if not amount.is_finite():
        raise ReminderCompositionError(f"Invoice amount is not finite: {value!r}")
    return f"{amount:,.2f}"


def describe_due_date(due_date: date, today: date) -> str:
    """Human wording for the due date relative to today."""
    days = (due_date - today).days
    if days < 0:
        overdue = -days
        return f"was due on {format_date_for_email(due_date)} and is now {overdue} day{'s' if overdue != 1 else ''} overdue"
    if days == 0:
        return "is due today"
    return f"is due on {format_date_for_email(due_date)} (in {days} day{'s' if days != 1 else ''})"


def generate_reminder_subject(invoice: Invoice, today: date) -> str:
    """
    Generate the email subject line.

    Format: "Payment reminder: <reference> overdue since <DD MMM YYYY>"
         or "Payment reminder: <reference> due <DD MMM YYYY>"
    """
    if invoice.due_date is None:
        raise ReminderCompositionError("Invoice due date is missing")

    reference = invoice.payment_reference.strip() or invoice.id
    date_str = format_date_for_email(invoice.due_date)
    if invoice.due_date < today:
        return f"Payment reminder: {reference} overdue since {date_str}"
    return f"Payment reminder: {reference} due {date_str}"


def generate_reminder_body(
    invoice: Invoice,
    recipient: Recipient,
    today: date,
    company_name: Optional[str] = None,
    reminder_cap: int = REMINDER_CAP
) -> str:
    """
    Generate the HTML body of a payment reminder.

    Args:
        invoice: Invoice being reminded about
        recipient: Resolved invoice owner
        today: Reference date for due/overdue wording
        company_name: Signature name (default: from config)
        reminder_cap: Maximum reminders per invoice, shown as "reminder n of cap"

    Returns:
        HTML string ready to send via email

    Raises:
        ReminderCompositionError: on missing amount or due date
    """
    if invoice.due_date is None:
        raise ReminderCompositionError("Invoice due date is missing")

    amount_str = format_amount_for_email(invoice.amount)
    due_wording = describe_due_date(invoice.due_date, today)
    reference = html.escape(invoice.payment_reference.strip() or invoice.id)
    signature = html.escape(company_name or DEFAULT_COMPANY_NAME)

    name = recipient.display_name
    greeting = f"Hi {html.escape(name)}," if name else "Hi there,"

    reminder_number = min(invoice.reminder_count + 1, reminder_cap)

    return f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="font-family: Arial, sans-serif; font-size: 14px; line-height: 1.6; color: #333; margin: 0; padding: 20px;">

    <p>{greeting}</p>

    <p>This is a friendly reminder that your invoice <strong>{reference}</strong> {due_wording}.</p>

    <table style="border-collapse: collapse; margin-bottom: 20px; border: 1px solid #ddd;">
        <tr>
            <td style="padding: 8px; border: 1px solid #ddd;">Payment reference</td>
            <td style="padding: 8px; border: 1px solid #ddd;"><strong>{reference}</strong></td>
        </tr>
        <tr>
            <td style="padding: 8px; border: 1px solid #ddd;">Amount due</td>
            <td style="padding: 8px; border: 1px solid #ddd; text-align: right;">{amount_str}</td>
        </tr>
        <tr>
            <td style="padding: 8px; border: 1px solid #ddd;">Due date</td>
            <td style="padding: 8px; border: 1px solid #ddd;">{format_date_for_email(invoice.due_date)}</td>
        </tr>
    </table>

    <p>Please quote the payment reference when you pay. If you have already paid, please disregard this message.</p>

    <p style="margin-top: 30px; margin-bottom: 5px;">
        Regards,<br>
        <strong>{signature}</strong>
    </p>

    <p style="margin-top: 20px; padding-top: 20px; border-top: 1px solid #eee; color: #666; font-size: 12px;">
        <em>This is a system-generated email (reminder {reminder_number} of {reminder_cap}).</em>
    </p>

</body>
</html>
"""


def compose_reminder(
    invoice: Invoice,
    recipient: Recipient,
    today: date,
    company_name: Optional[str] = None,
    reminder_cap: int = REMINDER_CAP
) -> Tuple[str, str]:
    """Return (subject, html_body) for one reminder."""
    subject = generate_reminder_subject(invoice, today)
    body = generate_reminder_body(invoice, recipient, today, company_name=company_name, reminder_cap=reminder_cap)
    return subject, body
