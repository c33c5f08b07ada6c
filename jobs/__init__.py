"""Scheduled background jobs."""

from jobs.scheduler import ReminderScheduler
