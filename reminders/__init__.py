"""
Overdue Invoice Reminder Module

This module selects open invoices that are due soon or overdue, emails a
payment reminder to the invoice owner and records the send on the invoice.
It is invoked by an external scheduler (cron or an HTTP trigger) and is
isolated from the inventory dashboard.
"""

__version__ = "1.0.0"
