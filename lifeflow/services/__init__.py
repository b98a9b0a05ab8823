"""Reporting and follow-up services built on stored records."""

from .reminders import OrderReminder, check_order_reminders
from .stats import ProcessingStats, processing_stats

__all__ = ["OrderReminder", "ProcessingStats", "check_order_reminders", "processing_stats"]
