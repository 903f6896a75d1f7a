import logging
from dataclasses import asdict

from notifier.worker import celery_app, get_runtime, run

logger = logging.getLogger(__name__)


@celery_app.task(name="drain_pending_deliveries")
def drain_pending_deliveries():
    """Retries queued notifications; skipped while WhatsApp is offline or a drain is running."""
    logger.info("Running drain_pending_deliveries task")
    report = run(get_runtime().pending_queue.drain())
    if report is None:
        return {"skipped": True}
    return {"skipped": False, **asdict(report)}
