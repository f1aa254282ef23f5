"""
Configuration file for the overdue invoice reminder job.

Fixed policy values (reminder cap, due window, table names) are defined here as
module constants. Credentials and deployment-specific values are read from
environment variables into a ReminderConfig object, which is passed explicitly
to the dispatcher so tests can substitute their own values.

IMPORTANT: Set credentials in your .env file or system environment before running
the job. Never commit them to version control.
"""

import os
import logging
from dataclasses import dataclass, field
from typing import List

# Set up logger for configuration warnings
_logger = logging.getLogger(__name__)

# ============================================================================
# Reminder Policy
# ============================================================================

# Maximum number of reminders ever sent for a single invoice
REMINDER_CAP = 3

# Invoices due within this many days (inclusive) are eligible for a reminder.
# Overdue invoices are always eligible (subject to the cap).
DUE_WINDOW_DAYS = 7

# Only invoices with this status are ever selected
OPEN_STATUS = "open"

# ============================================================================
# Data Store Configuration
# ============================================================================

# Table names in the application database
INVOICES_TABLE = "invoices"
PROFILES_TABLE = "profiles"

# Default MySQL port (used if REMINDER_DB_PORT is not set)
DEFAULT_DB_PORT = 3306

# Connection and read timeout for the database, in seconds
DB_CONNECT_TIMEOUT_SECONDS = 10

# ============================================================================
# Email Provider Configuration
# ============================================================================

# Supported transports: "api" (HTTP transactional email API) or "smtp"
EMAIL_TRANSPORTS = ("api", "smtp")
DEFAULT_EMAIL_TRANSPORT = "api"

# Transactional email API endpoint (Resend-compatible JSON API)
DEFAULT_EMAIL_API_URL = "https://api.resend.com/emails"

# Sender address used when REMINDER_EMAIL_FROM is not set
DEFAULT_EMAIL_FROM = "Inventory Billing <billing@example.com>"

# Default SMTP port (used if SMTP_PORT environment variable is not set)
DEFAULT_SMTP_PORT = 587

# Timeout for a single dispatch call, in seconds
DEFAULT_DISPATCH_TIMEOUT_SECONDS = 10.0

# Delay in seconds between consecutive reminder emails.
# Keeps the job under the provider's rate limit.
DEFAULT_SEND_DELAY_SECONDS = 1.0

# ============================================================================
# Email Content
# ============================================================================

# Name used in the email signature
DEFAULT_COMPANY_NAME = "Inventory Management"

# Date format for display in email subject and body (e.g., "15 Jan 2024")
DATE_FORMAT_DISPLAY = "%d %b %Y"

# ============================================================================
# HTTP Trigger
# ============================================================================

DEFAULT_CORS_ORIGINS = "*"

# ============================================================================
# File Paths and Directories
# ============================================================================

# Directory for log files, relative to the working directory
LOGS_DIR = os.getenv("REMINDER_LOGS_DIR", "logs")

# Log file name
LOG_FILENAME = "invoice_reminders.log"

# Append DEBUG-level records to LOGS_DIR/LOG_FILENAME. Set to false where the
# working directory is read-only, e.g. a serverless host for the HTTP trigger.
LOG_TO_FILE = os.getenv("REMINDER_LOG_TO_FILE", "true").strip().lower() in ("1", "true", "yes")


def _read_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        _logger.warning(f"Invalid {name} value '{raw}'. Using default: {default}.")
        return default


def _read_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        _logger.warning(f"Invalid {name} value '{raw}'. Using default: {default}.")
        return default
    if value < 0:
        _logger.warning(f"Negative {name} value '{raw}'. Using default: {default}.")
        return default
    return value


@dataclass
class ReminderConfig:
    """
    Runtime configuration for one reminder run.

    Build it with ReminderConfig.from_env() in entry points, or construct it
    directly in tests.
    """

    # Data store
    db_host: str = ""
    db_port: int = DEFAULT_DB_PORT
    db_name: str = ""
    db_user: str = ""
    db_password: str = ""

    # Email provider
    email_transport: str = DEFAULT_EMAIL_TRANSPORT
    email_api_key: str = ""
    email_api_url: str = DEFAULT_EMAIL_API_URL
    email_from: str = DEFAULT_EMAIL_FROM
    smtp_server: str = ""
    smtp_port: int = DEFAULT_SMTP_PORT
    smtp_user: str = ""
    smtp_password: str = ""
    dispatch_timeout_seconds: float = DEFAULT_DISPATCH_TIMEOUT_SECONDS
    send_delay_seconds: float = DEFAULT_SEND_DELAY_SECONDS

    # Policy and content
    reminder_cap: int = REMINDER_CAP
    due_window_days: int = DUE_WINDOW_DAYS
    company_name: str = DEFAULT_COMPANY_NAME

    # HTTP trigger
    cors_origins: List[str] = field(default_factory=lambda: [DEFAULT_CORS_ORIGINS])

    @classmethod
    def from_env(cls) -> "ReminderConfig":
        """
        Read configuration from environment variables.

        Missing credentials are logged as warnings (names only, never values).
        The run still starts; the affected component reports the failure.

        Returns:
            ReminderConfig populated from the environment
        """
        transport = os.getenv("REMINDER_EMAIL_TRANSPORT", DEFAULT_EMAIL_TRANSPORT).strip().lower()
        if transport not in EMAIL_TRANSPORTS:
            _logger.warning(
                f"Unknown REMINDER_EMAIL_TRANSPORT '{transport}'. Using default: {DEFAULT_EMAIL_TRANSPORT}."
            )
            transport = DEFAULT_EMAIL_TRANSPORT

        # Expected format in .env: REMINDER_CORS_ORIGINS=https://app.company.com,https://admin.company.com
        cors_origins = [
            origin.strip()
            for origin in os.getenv("REMINDER_CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",")
            if origin.strip()
        ]

        config = cls(
            db_host=os.getenv("REMINDER_DB_HOST", ""),
            db_port=_read_int("REMINDER_DB_PORT", DEFAULT_DB_PORT),
            db_name=os.getenv("REMINDER_DB_NAME", ""),
            db_user=os.getenv("REMINDER_DB_USER", ""),
            db_password=os.getenv("REMINDER_DB_PASSWORD", ""),
            email_transport=transport,
            email_api_key=os.getenv("REMINDER_EMAIL_API_KEY", ""),
            email_api_url=os.getenv("REMINDER_EMAIL_API_URL", DEFAULT_EMAIL_API_URL),
            email_from=os.getenv("REMINDER_EMAIL_FROM", DEFAULT_EMAIL_FROM),
            smtp_server=os.getenv("SMTP_SERVER", ""),
            smtp_port=_read_int("SMTP_PORT", DEFAULT_SMTP_PORT),
            smtp_user=os.getenv("SMTP_USER", ""),
            smtp_password=os.getenv("SMTP_PASSWORD", ""),
            dispatch_timeout_seconds=_read_float("REMINDER_DISPATCH_TIMEOUT", DEFAULT_DISPATCH_TIMEOUT_SECONDS),
            send_delay_seconds=_read_float("REMINDER_SEND_DELAY_SECONDS", DEFAULT_SEND_DELAY_SECONDS),
            company_name=os.getenv("REMINDER_COMPANY_NAME", DEFAULT_COMPANY_NAME),
            cors_origins=cors_origins or [DEFAULT_CORS_ORIGINS],
        )

        missing = config.missing_settings()
        if missing:
            _logger.warning(f"Reminder configuration incomplete. Missing: {', '.join(missing)}")

        return config

    def missing_settings(self) -> List[str]:
        """Return the names of required environment variables that are empty."""
        missing = []
        if not self.db_host:
            missing.append("REMINDER_DB_HOST")
        if not self.db_name:
            missing.append("REMINDER_DB_NAME")
        if not self.db_user:
            missing.append("REMINDER_DB_USER")
        if not self.db_password:
            missing.append("REMINDER_DB_PASSWORD")

        if self.email_transport == "api":
            if not self.email_api_key:
                missing.append("REMINDER_EMAIL_API_KEY")
        else:
            if not self.smtp_server:
                missing.append("SMTP_SERVER")
            if not self.smtp_user:
                missing.append("SMTP_USER")
            if not self.smtp_password:
                missing.append("SMTP_PASSWORD")

        return missing
