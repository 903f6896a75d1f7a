import asyncio
import logging

from celery import Celery
from celery.schedules import crontab
from celery.signals import worker_process_init, worker_process_shutdown, worker_ready

from notifier.config import Settings
from notifier.runtime import Runtime

settings = Settings.from_env()

# --- Logging ---
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(settings.log_file),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

celery_app = Celery(
    'notifier',
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=['notifier.tasks.orders', 'notifier.tasks.pending']
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='America/Sao_Paulo',
    enable_utc=True,
    worker_concurrency=1,
    beat_schedule={
        'reconcile-orders': {
            'task': 'run_reconciliation_cycle',
            'schedule': settings.check_interval_minutes * 60.0,
        },
        'drain-pending-deliveries': {
            'task': 'drain_pending_deliveries',
            'schedule': settings.queue_interval_minutes * 60.0,
        },
        'purge-old-records-daily': {
            'task': 'purge_old_records',
            'schedule': crontab(hour=2, minute=0),
        },
    }
)

# One runtime and one event loop per worker process; tasks run on that loop.
_loop: asyncio.AbstractEventLoop | None = None
_runtime: Runtime | None = None


def _get_loop() -> asyncio.AbstractEventLoop:
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
    return _loop


def run(coro):
    """Runs a coroutine on the worker process loop."""
    return _get_loop().run_until_complete(coro)


def get_runtime() -> Runtime:
    """The process runtime, connected on first use by a task."""
    global _runtime
    if _runtime is None:
        _runtime = Runtime(settings)
    if not _runtime.started:
        run(_runtime.start())
    return _runtime


@worker_process_init.connect
def on_worker_init(**kwargs):
    """Builds the runtime only; no network I/O while the pool waits for the child to come up."""
    global _runtime
    logger.info("Worker process initializing... Building runtime.")
    _runtime = Runtime(settings)


@worker_ready.connect
def on_worker_ready(**kwargs):
    """Queues the boot pass: one order check, then the status summary."""
    logger.info("Worker ready... Queueing startup check.")
    celery_app.send_task("run_reconciliation_cycle")
    celery_app.send_task("send_status_summary")


@worker_process_shutdown.connect
def on_worker_shutdown(**kwargs):
    global _runtime
    logger.info("Worker process shutting down... Closing runtime.")
    if _runtime is not None:
        run(_runtime.close())
        _runtime = None
    if _loop is not None and not _loop.is_closed():
        _loop.close()


if __name__ == '__main__':
    celery_app.start()
