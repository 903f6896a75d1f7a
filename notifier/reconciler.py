import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from notifier.exceptions import ConfigurationMissing, DependencyUnavailable
from notifier.health import Dependency, HealthReport
from notifier.models import Order
from notifier.pending_queue import DrainReport
from notifier.policy import continue_on_error
from notifier.utils.formatter import format_order_message

logger = logging.getLogger(__name__)


class OrderOutcome(Enum):
    ALREADY_PROCESSED = "already_processed"
    INELIGIBLE = "ineligible"
    DELIVERED = "delivered"
    QUEUED = "queued"
    UNIDENTIFIED = "unidentified"
    FAILED = "failed"


@dataclass
class CycleReport:
    started_at: datetime
    health: HealthReport | None = None
    fetched: int = 0
    outcomes: dict[str, OrderOutcome] = field(default_factory=dict)
    drain: DrainReport | None = None
    failed: bool = False

    def count(self, outcome: OrderOutcome) -> int:
        return sum(1 for value in self.outcomes.values() if value is outcome)


class Reconciler:
    """One polling pass: health check, fetch, process each order once, drain the queue."""

    def __init__(
        self,
        *,
        ledger,
        commerce,
        messaging,
        health_gate,
        pending_queue,
        system_log,
        max_orders: int = 10,
        retention_days: int = 30,
        log_retention_rows: int = 1000,
    ):
        self.ledger = ledger
        self.commerce = commerce
        self.messaging = messaging
        self.health_gate = health_gate
        self.pending_queue = pending_queue
        self.system_log = system_log
        self.max_orders = max_orders
        self.retention_days = retention_days
        self.log_retention_rows = log_retention_rows
        self.last_check: datetime | None = None
        self.last_report: CycleReport | None = None
        self._running = False
        self._stopped = False

    def stop(self) -> None:
        """Later ticks are dropped; a cycle already in progress finishes."""
        self._stopped = True

    @property
    def is_running(self) -> bool:
        return self._running

    async def run_cycle(self) -> CycleReport | None:
        """Runs one reconciliation pass; returns None if a pass is already in progress."""
        if self._stopped:
            logger.info("Reconciler stopped, tick dropped")
            return None
        if self._running:
            logger.info("Reconciliation cycle already running, tick dropped")
            return None
        self._running = True
        try:
            report = CycleReport(started_at=datetime.now(timezone.utc))
            self.last_check = report.started_at
            async with continue_on_error(self.system_log, "Erro durante verificação de pedidos") as outcome:
                await self._run(report)
            report.failed = outcome.failed
            self.last_report = report
            return report
        finally:
            self._running = False

    async def _run(self, report: CycleReport) -> None:
        logger.info("Checking for new orders...")
        report.health = await self.health_gate.check_all()
        if Dependency.LEDGER in self.health_gate.recovered:
            await self.pending_queue.sync()
        if not report.health.can_fetch:
            logger.warning(f"Dependencies offline, skipping order fetch: {report.health.as_dict()}")
            return

        orders = await self.commerce.fetch_recent_orders(self.max_orders)
        report.fetched = len(orders)
        if not orders:
            logger.info("No new orders found")
        else:
            logger.info(f"Found {len(orders)} orders to process")
        for order in orders:
            report.outcomes[order.number] = await self.process_order(order)

        if report.health.messaging_online and self.messaging.is_online:
            report.drain = await self.pending_queue.drain()
        logger.info(
            f"Order check finished: {report.count(OrderOutcome.DELIVERED)} delivered, "
            f"{report.count(OrderOutcome.QUEUED)} queued"
        )

    async def process_order(self, order: Order) -> OrderOutcome:
        """Moves one order through the processed/pending state machine. Never raises."""
        result = OrderOutcome.FAILED
        async with continue_on_error(self.system_log, f"Erro ao processar pedido #{order.number}"):
            result = await self._process(order)
        return result

    async def _process(self, order: Order) -> OrderOutcome:
        if not order.is_identified():
            # One "0" marker would shadow every later order without an identity.
            await self.system_log.warning(f"Pedido sem número nem id ignorado (status {order.status!r})")
            return OrderOutcome.UNIDENTIFIED

        if await self.ledger.is_processed(order.number):
            logger.info(f"Order #{order.number} already processed")
            return OrderOutcome.ALREADY_PROCESSED

        if not order.is_eligible():
            logger.info(f"Order #{order.number} is not in processing status ({order.status})")
            return OrderOutcome.INELIGIBLE

        try:
            await self.messaging.send(format_order_message(order))
        except (DependencyUnavailable, ConfigurationMissing) as e:
            await self.system_log.warning(
                f"Erro ao enviar mensagem do pedido #{order.number}, adicionando à fila de pendentes: {e}"
            )
            # Marked processed even though undelivered: from here on only the pending queue retries it.
            await self.pending_queue.enqueue(order)
            await self.ledger.mark_processed(order.number)
            return OrderOutcome.QUEUED

        await self.ledger.mark_processed(order.number)
        await self.system_log.success(f"Pedido #{order.number} processado e mensagem enviada")
        return OrderOutcome.DELIVERED

    async def purge_old_records(self) -> int:
        """Retention sweep for processed markers and the system log."""
        removed = 0
        async with continue_on_error(self.system_log, "Erro durante limpeza de dados antigos"):
            removed = await self.ledger.purge_processed_older_than(self.retention_days)
            trimmed = await self.ledger.trim_logs(self.log_retention_rows)
            await self.system_log.info(
                f"Limpeza concluída: {removed} pedidos antigos e {trimmed} registros de log removidos"
            )
        return removed

    def status(self) -> dict:
        return {
            "is_running": self._running,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "pending_orders": len(self.pending_queue),
            "health": self.health_gate.snapshot(),
        }
