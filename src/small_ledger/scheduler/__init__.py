"""Scheduler module for periodic ledger maintenance."""

from small_ledger.scheduler.scheduler import LedgerScheduler, ScheduledJob

__all__ = ["LedgerScheduler", "ScheduledJob"]
