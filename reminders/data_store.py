"""
Invoice Data Store Module

This module provides access to the application database for the reminder job.

CRITICAL SAFETY:
- Parameterized queries only
- The only write is the reminder bookkeeping update on a single invoice
- No PII logging (email addresses, names)
- The bookkeeping update refuses to move reminder_count past the cap
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Protocol

import pymysql
import pymysql.cursors

from reminders.config import (
    DB_CONNECT_TIMEOUT_SECONDS,
    INVOICES_TABLE,
    OPEN_STATUS,
    PROFILES_TABLE,
    REMINDER_CAP,
    ReminderConfig,
)
from reminders.logger import get_logger
from reminders.models import Invoice, Recipient

logger = get_logger(__name__)


class InvoiceStoreError(Exception):
    """Raised when the data store cannot be read or written."""


class InvoiceStore(Protocol):
    def fetch_open_invoices(self) -> List[Invoice]: ...

    def fetch_recipient(self, user_id: str) -> Optional[Recipient]: ...

    def record_reminder_sent(self, invoice_id: str, sent_at: datetime) -> bool: ...


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _to_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def row_to_invoice(row: Dict[str, Any]) -> Invoice:
    """Convert a database row (dict cursor) into an Invoice."""
    return Invoice(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        amount=_to_decimal(row.get("amount")),
        due_date=_to_date(row.get("due_date")),
        payment_reference=str(row.get("payment_reference") or ""),
        status=str(row.get("status") or ""),
        reminder_sent_at=row.get("reminder_sent_at"),
        reminder_count=int(row.get("reminder_count") or 0),
    )


def row_to_recipient(row: Dict[str, Any]) -> Recipient:
    """Convert a profile row into a Recipient. Blank emails become None."""
    email = row.get("email")
    email = str(email).strip() if email else None
    return Recipient(
        user_id=str(row["id"]),
        email=email or None,
        first_name=row.get("first_name"),
        last_name=row.get("last_name"),
    )


class MySQLInvoiceStore:
    """Invoice store backed by the application's MySQL database."""

    def __init__(self, config: ReminderConfig, reminder_cap: int = REMINDER_CAP):
        self.config = config
        self.reminder_cap = reminder_cap

    def _connect(self) -> pymysql.connections.Connection:
        missing = [
            name for name, value in (
                ("REMINDER_DB_HOST", self.config.db_host),
                ("REMINDER_DB_NAME", self.config.db_name),
                ("REMINDER_DB_USER", self.config.db_user),
                ("REMINDER_DB_PASSWORD", self.config.db_password),
            )
            if not value
        ]
        if missing:
            raise InvoiceStoreError(f"Database configuration incomplete. Missing: {', '.join(missing)}")

        try:
            connection = pymysql.connect(
                host=self.config.db_host,
                port=self.config.db_port,
                database=self.config.db_name,
                user=self.config.db_user,
                password=self.config.db_password,
                connect_timeout=DB_CONNECT_TIMEOUT_SECONDS,
                read_timeout=DB_CONNECT_TIMEOUT_SECONDS,
                write_timeout=DB_CONNECT_TIMEOUT_SECONDS,
                cursorclass=pymysql.cursors.DictCursor,
                autocommit=False,
            )
        except pymysql.MySQLError as e:
            raise InvoiceStoreError(f"Failed to connect to database: {str(e)}") from e

        logger.debug(f"Database connection established to {self.config.db_host}:{self.config.db_port}/{self.config.db_name}")
        return connection

    def fetch_open_invoices(self) -> List[Invoice]:
        """
        Bulk read of every invoice with status 'open'.

        Due-date and cap filtering is left to the selection policy.

        Raises:
            InvoiceStoreError: if the query cannot be executed
        """
        query = (
            f"SELECT id, user_id, amount, due_date, payment_reference, status, "
            f"reminder_sent_at, reminder_count FROM {INVOICES_TABLE} WHERE status = %s"
        )
        try:
            with self._connect() as connection:
                with connection.cursor() as cursor:
                    cursor.execute(query, (OPEN_STATUS,))
                    rows = cursor.fetchall()
        except pymysql.MySQLError as e:
            raise InvoiceStoreError(f"Error fetching open invoices: {str(e)}") from e

        invoices = [row_to_invoice(row) for row in rows]
        logger.info(f"Fetched {len(invoices)} open invoice(s) from database")
        return invoices

    def fetch_recipient(self, user_id: str) -> Optional[Recipient]:
        """
        Look up the profile of an invoice owner.

        Returns:
            Recipient, or None if no profile exists for user_id

        Raises:
            InvoiceStoreError: if the query cannot be executed
        """
        query = f"SELECT id, email, first_name, last_name FROM {PROFILES_TABLE} WHERE id = %s"
        try:
            with self._connect() as connection:
                with connection.cursor() as cursor:
                    cursor.execute(query, (user_id,))
                    row = cursor.fetchone()
        except pymysql.MySQLError as e:
            raise InvoiceStoreError(f"Error fetching profile for user {user_id}: {str(e)}") from e

        if not row:
            return None
        return row_to_recipient(row)

    def record_reminder_sent(self, invoice_id: str, sent_at: datetime) -> bool:
        """
        Set reminder_sent_at and increment reminder_count in one statement.

        The WHERE clause keeps reminder_count at or below the cap.

        Returns:
            True if exactly one invoice row was updated, False otherwise

        Raises:
            InvoiceStoreError: if the update cannot be executed
        """
        query = (
            f"UPDATE {INVOICES_TABLE} "
            f"SET reminder_sent_at = %s, reminder_count = reminder_count + 1 "
            f"WHERE id = %s AND reminder_count < %s"
        )
        try:
            with self._connect() as connection:
                with connection.cursor() as cursor:
                    updated = cursor.execute(query, (sent_at, invoice_id, self.reminder_cap))
                connection.commit()
        except pymysql.MySQLError as e:
            raise InvoiceStoreError(f"Error updating reminder state for invoice {invoice_id}: {str(e)}") from e

        return updated == 1
