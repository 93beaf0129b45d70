"""Celery tasks driving the reconciler from beat."""

import structlog
from celery import shared_task

from modules.assignment.container import get_assignment_system

logger = structlog.get_logger(__name__)


@shared_task(name="assignment.reconcile_tick")
def reconcile_tick():
    """One monitoring cycle: hand-offs, timeouts, queue draining, metrics."""
    summary = get_assignment_system().reconciler.tick()
    logger.info("reconcile_tick.executed", **summary)
    return summary


@shared_task(name="assignment.reconcile_cleanup")
def reconcile_cleanup():
    """One cleanup cycle: history purge, queue expiry, counter repair."""
    summary = get_assignment_system().reconciler.cleanup()
    logger.info("reconcile_cleanup.executed", **summary)
    return summary
