#!/usr/bin/env python3
"""
Cron Runner Script for the Invoice Reminder Job

This script is designed to be executed by cron once a day.
It runs one reminder batch and exits with 0 on success, 1 on a fatal error.

CRON CONFIGURATION:
-------------------
# Run every day at 08:00 UTC
0 8 * * * /usr/bin/python3 /path/to/project/scripts/run_invoice_reminders.py >> /path/to/project/logs/cron.log 2>&1

Re-running on the same day is safe in the sense that each invoice's
reminder_count is capped, but an invoice can be reminded again by a second run.
Do not schedule overlapping runs.

ENVIRONMENT VARIABLES:
----------------------
Loaded from .env in the project root if present, otherwise from the environment.

REQUIRED:
- REMINDER_DB_HOST, REMINDER_DB_NAME, REMINDER_DB_USER, REMINDER_DB_PASSWORD
- REMINDER_EMAIL_API_KEY (api transport) or SMTP_SERVER, SMTP_USER, SMTP_PASSWORD (smtp transport)

OPTIONAL:
- REMINDER_DB_PORT (default: 3306)
- REMINDER_EMAIL_TRANSPORT (api | smtp, default: api)
- REMINDER_EMAIL_API_URL, REMINDER_EMAIL_FROM
- REMINDER_DISPATCH_TIMEOUT (default: 10 seconds)
- REMINDER_SEND_DELAY_SECONDS (default: 1.0)
- REMINDER_COMPANY_NAME
- REMINDER_LOGS_DIR (default: logs), REMINDER_LOG_TO_FILE (default: true)

LOGGING:
--------
- Cron output: logs/cron.log (stdout/stderr from this script)
- Application logs: logs/invoice_reminders.log (from reminder modules)
"""

import sys
from pathlib import Path

from dotenv import load_dotenv

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

load_dotenv(project_root / ".env")

from reminders.orchestrator import run_invoice_reminders


def main():
    """
    Main entry point for cron execution.

    This function:
    1. Runs one reminder batch with configuration from the environment
    2. Prints minimal status output
    3. Exits with appropriate exit code
    """
    try:
        print("=" * 70)
        print("CRON: Starting Invoice Reminder Run")
        print("=" * 70)
        print()

        result = run_invoice_reminders()

        print()
        print("=" * 70)

        if result.success:
            print("CRON: Reminder run completed successfully")
            print(f"Reminders sent: {result.reminders_sent}")
            for key, count in result.summary.counts.items():
                print(f"  {key}: {count}")
            if result.summary.state_update_failures:
                print(f"WARNING: {result.summary.state_update_failures} reminder(s) sent without recorded state")
            print("=" * 70)
            print()
            sys.exit(0)
        else:
            print("CRON: Reminder run failed")
            print(f"Error: {result.error}")
            print("=" * 70)
            print()
            sys.exit(1)

    except Exception as e:
        print()
        print("=" * 70)
        print("CRON: Unexpected error in reminder run")
        print(f"Error: {str(e)}")
        print("=" * 70)
        print()
        sys.exit(1)


if __name__ == "__main__":
    main()
