import logging

from notifier.reconciler import OrderOutcome
from notifier.worker import celery_app, get_runtime, run

logger = logging.getLogger(__name__)


@celery_app.task(name="run_reconciliation_cycle")
def run_reconciliation_cycle():
    """Periodic order check: health gate, fetch, notify, drain."""
    logger.info("Running run_reconciliation_cycle task")
    report = run(get_runtime().reconciler.run_cycle())
    if report is None:
        return {"skipped": True}
    return {
        "skipped": False,
        "failed": report.failed,
        "fetched": report.fetched,
        "delivered": report.count(OrderOutcome.DELIVERED),
        "queued": report.count(OrderOutcome.QUEUED),
        "outcomes": {number: outcome.value for number, outcome in report.outcomes.items()},
    }


@celery_app.task(name="purge_old_records")
def purge_old_records():
    """Daily retention sweep of processed markers and system log rows."""
    logger.info("Running purge_old_records task")
    removed = run(get_runtime().reconciler.purge_old_records())
    return {"removed": removed}


@celery_app.task(name="send_status_summary")
def send_status_summary():
    """Dependency summary to WhatsApp, queued once when the worker comes up."""
    logger.info("Running send_status_summary task")
    return {"sent": run(get_runtime().send_status_summary())}
