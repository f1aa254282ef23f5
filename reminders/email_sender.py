"""
Email Sender Module

This module delivers one composed reminder through the external email provider.
This is a pure infrastructure module - no email content generation logic.

Two transports are supported:
- api:  transactional email HTTP API (JSON POST, bearer token) via httpx
- smtp: SMTP with STARTTLS via smtplib

Every call is bounded by a timeout. Senders never raise: each failure
(non-2xx response, network error, timeout) is returned as a DispatchResult.

No PII logging: error texts carry status codes and exception types only,
never recipient addresses. Raw provider detail goes to DEBUG.
"""

import json
import smtplib
import socket
import time
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Callable, Optional, Protocol

import httpx

from reminders.config import ReminderConfig
from reminders.logger import get_logger
from reminders.models import DispatchResult

logger = get_logger(__name__)


class EmailSender(Protocol):
    def send(self, to_email: str, subject: str, html_body: str) -> DispatchResult: ...


class DispatchDeadlineExceeded(Exception):
    """The provider call ran past its overall deadline."""


def describe_smtp_error(error: Exception) -> str:
    """
    Summarize an SMTP failure without the addresses smtplib puts in its messages.

    Example: SMTPRecipientsRefused({'a@b.c': (550, ...)}) -> "SMTPRecipientsRefused (SMTP 550)"
    """
    name = type(error).__name__
    if isinstance(error, smtplib.SMTPRecipientsRefused):
        codes = sorted({str(code) for code, _ in error.recipients.values()})
        return f"{name} (SMTP {', '.join(codes)})" if codes else name
    if isinstance(error, smtplib.SMTPResponseException):
        return f"{name} (SMTP {error.smtp_code})"
    return name


def _validate_message(to_email: str, subject: str) -> Optional[str]:
    if not to_email or '@' not in to_email:
        return "Invalid recipient email address"
    if not subject:
        return "Email subject is empty"
    return None


class ApiEmailSender:
    """Sends email through a transactional email HTTP API."""

    def __init__(
        self,
        api_key: str,
        api_url: str,
        from_email: str,
        timeout_seconds: float,
        client: Optional[httpx.Client] = None,
        clock: Optional[Callable[[], float]] = None
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.from_email = from_email
        self.timeout_seconds = timeout_seconds
        self._client = client or httpx.Client(timeout=timeout_seconds)
        self._clock = clock or time.monotonic

        if not self.api_key:
            logger.warning("REMINDER_EMAIL_API_KEY not set - every dispatch will fail")

    def send(self, to_email: str, subject: str, html_body: str) -> DispatchResult:
        """
        POST one email to the provider.

        Returns:
            DispatchResult with the provider message id on a 2xx response,
            or a descriptive error otherwise
        """
        error = _validate_message(to_email, subject)
        if error:
            return DispatchResult(success=False, error=error)

        if not self.api_key:
            return DispatchResult(success=False, error="Email provider API key is not configured")

        payload = {
            "from": self.from_email,
            "to": [to_email],
            "subject": subject,
            "html": html_body,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        # Per-phase httpx timeouts do not cap a slowly trickled body,
        # so the whole call also runs against a deadline.
        deadline = self._clock() + self.timeout_seconds

        try:
            with self._client.stream(
                "POST",
                self.api_url,
                json=payload,
                headers=headers,
                timeout=self.timeout_seconds,
            ) as response:
                chunks = []
                for chunk in response.iter_bytes():
                    chunks.append(chunk)
                    if self._clock() > deadline:
                        raise DispatchDeadlineExceeded()
                status_code = response.status_code
                is_success = response.is_success
                content = b"".join(chunks)
        except (httpx.TimeoutException, DispatchDeadlineExceeded):
            error_msg = f"Email provider timed out after {self.timeout_seconds}s"
            logger.error(error_msg)
            return DispatchResult(success=False, error=error_msg)
        except httpx.HTTPError as e:
            error_msg = f"Network error calling email provider: {type(e).__name__}"
            logger.error(error_msg)
            logger.debug(f"Email provider network error detail: {str(e)}")
            return DispatchResult(success=False, error=error_msg)
        except Exception as e:
            error_msg = f"Unexpected error calling email provider: {type(e).__name__}"
            logger.error(error_msg)
            logger.debug("Email provider unexpected error detail", exc_info=True)
            return DispatchResult(success=False, error=error_msg)

        if not is_success:
            # Provider bodies can echo the recipient address; keep them out of INFO+ logs
            error_msg = f"Email provider returned HTTP {status_code}"
            logger.error(error_msg)
            logger.debug(f"Email provider response body: {content[:200]!r}")
            return DispatchResult(success=False, error=error_msg)

        message_id = None
        try:
            body = json.loads(content)
            if isinstance(body, dict) and body.get("id"):
                message_id = str(body["id"])
        except ValueError:
            logger.debug("Email provider response is not JSON; no message id recorded")

        return DispatchResult(success=True, provider_message_id=message_id)

    def close(self) -> None:
        self._client.close()


class SmtpEmailSender:
    """Sends email over SMTP with STARTTLS."""

    def __init__(
        self,
        smtp_server: str,
        smtp_port: int,
        smtp_user: str,
        smtp_password: str,
        from_email: str,
        timeout_seconds: float
    ):
        self.smtp_server = smtp_server
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_email = from_email or smtp_user
        self.timeout_seconds = timeout_seconds

    def send(self, to_email: str, subject: str, html_body: str) -> DispatchResult:
        error = _validate_message(to_email, subject)
        if error:
            return DispatchResult(success=False, error=error)

        if not self.smtp_server:
            return DispatchResult(success=False, error="SMTP_SERVER is not configured")
        if not self.smtp_user or not self.smtp_password:
            return DispatchResult(success=False, error="SMTP_USER or SMTP_PASSWORD is not configured")

        # multipart/alternative with a single text/html part
        message = MIMEMultipart('alternative')
        message['From'] = self.from_email
        message['To'] = to_email
        message['Subject'] = subject
        message.attach(MIMEText(html_body, 'html'))

        try:
            server = smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=self.timeout_seconds)
            try:
                server.starttls()
                server.login(self.smtp_user, self.smtp_password)
                server.send_message(message)
            finally:
                try:
                    server.quit()
                except smtplib.SMTPException as e:
                    logger.debug(f"SMTP quit failed after session: {describe_smtp_error(e)}")
        except (socket.timeout, TimeoutError):
            error_msg = f"SMTP server timed out after {self.timeout_seconds}s"
            logger.error(error_msg)
            return DispatchResult(success=False, error=error_msg)
        except (smtplib.SMTPException, OSError) as e:
            error_msg = f"SMTP delivery failed: {describe_smtp_error(e)}"
            logger.error(error_msg)
            logger.debug(f"SMTP delivery failure detail: {str(e)}")
            return DispatchResult(success=False, error=error_msg)
        except Exception as e:
            error_msg = f"Unexpected error in SMTP delivery: {type(e).__name__}"
            logger.error(error_msg)
            logger.debug("SMTP unexpected error detail", exc_info=True)
            return DispatchResult(success=False, error=error_msg)

        return DispatchResult(success=True)


def build_email_sender(config: ReminderConfig) -> EmailSender:
    """Create the sender for the configured transport."""
    if config.email_transport == "smtp":
        logger.info(f"Using SMTP transport: {config.smtp_server}:{config.smtp_port}")
        return SmtpEmailSender(
            smtp_server=config.smtp_server,
            smtp_port=config.smtp_port,
            smtp_user=config.smtp_user,
            smtp_password=config.smtp_password,
            from_email=config.email_from,
            timeout_seconds=config.dispatch_timeout_seconds,
        )

    logger.info(f"Using email API transport: {config.email_api_url}")
    return ApiEmailSender(
        api_key=config.email_api_key,
        api_url=config.email_api_url,
        from_email=config.email_from,
        timeout_seconds=config.dispatch_timeout_seconds,
    )
