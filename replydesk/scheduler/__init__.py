"""Scheduled sync and digest jobs."""

from replydesk.scheduler.jobs import JobRunner
from replydesk.scheduler.scheduler import JobScheduler

__all__ = ["JobRunner", "JobScheduler"]
