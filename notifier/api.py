import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from notifier.exceptions import ConfigurationMissing, DependencyUnavailable, StoreUnavailable
from notifier.models import LedgerStats
from notifier.runtime import Runtime
from notifier.utils.formatter import format_test_message

logger = logging.getLogger(__name__)

SERVICE_NAME = "order-notifier"
RECENT_LOG_LIMIT = 50


def celery_dispatcher(task_name: str) -> str:
    """Queues a worker task by name and returns its id."""
    from notifier.worker import celery_app

    return celery_app.send_task(task_name).id


def create_app(runtime: Runtime | None = None, dispatcher=None) -> FastAPI:
    """Operational HTTP surface. The app owns its runtime for the lifetime of the server."""
    dispatch = dispatcher or celery_dispatcher

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.runtime = runtime or Runtime.from_env()
        app.state.started_at = time.monotonic()
        await app.state.runtime.start()
        try:
            yield
        finally:
            await app.state.runtime.close()

    app = FastAPI(
        title="Order Notifier",
        description="Health, status and manual triggers for the WooCommerce to WhatsApp notifier.",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.url.path}")
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.get("/")
    async def root(request: Request):
        return {
            "status": "online",
            "service": SERVICE_NAME,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - request.app.state.started_at, 3),
            "pid": os.getpid(),
        }

    @app.get("/ping", response_class=PlainTextResponse)
    async def ping():
        return "pong"

    @app.get("/health")
    async def health(request: Request):
        rt: Runtime = request.app.state.runtime
        report = await rt.health_gate.probe()
        last_check = rt.reconciler.last_check
        return {
            "status": "healthy" if report.all_online else "degraded",
            "services": report.as_dict(),
            "pending_orders": len(rt.pending_queue),
            "last_check": last_check.isoformat() if last_check else None,
        }

    @app.get("/status")
    async def status(request: Request):
        rt: Runtime = request.app.state.runtime
        try:
            ledger_stats = await rt.ledger.stats()
            logs = [entry.model_dump(mode="json") for entry in await rt.ledger.recent_logs(RECENT_LOG_LIMIT)]
        except StoreUnavailable as e:
            logger.warning(f"Ledger unavailable for status: {e}")
            ledger_stats = LedgerStats(pending=len(rt.pending_queue), online=False)
            logs = []
        commerce_stats = await rt.commerce.get_stats()
        if commerce_stats.get("last_check") is not None:
            commerce_stats["last_check"] = commerce_stats["last_check"].isoformat()
        return {
            "database": ledger_stats.model_dump(),
            "woocommerce": commerce_stats,
            "whatsapp": rt.messaging.error_info(),
            "reconciler": rt.reconciler.status(),
            "recent_logs": logs,
        }

    @app.post("/check-now")
    async def check_now():
        task_id = dispatch("run_reconciliation_cycle")
        logger.info(f"Manual order check dispatched: {task_id}")
        return {"message": "Verificação de pedidos iniciada", "task_id": task_id}

    @app.post("/process-queue")
    async def process_queue():
        task_id = dispatch("drain_pending_deliveries")
        logger.info(f"Manual pending queue drain dispatched: {task_id}")
        return {"message": "Processamento da fila iniciado", "task_id": task_id}

    @app.post("/test-whatsapp")
    async def test_whatsapp(request: Request):
        rt: Runtime = request.app.state.runtime
        try:
            await rt.messaging.send(format_test_message())
        except (DependencyUnavailable, ConfigurationMissing) as e:
            await rt.system_log.error("Erro ao enviar mensagem de teste", e)
            return JSONResponse(status_code=500, content={"error": str(e)})
        await rt.system_log.success("Mensagem de teste enviada")
        return {"message": "Mensagem de teste enviada com sucesso"}

    return app


app = create_app()
