import logging
from dataclasses import dataclass
from enum import Enum

from pydantic import ValidationError

from notifier.models import Order, PendingDelivery
from notifier.policy import continue_on_error
from notifier.utils.formatter import format_retry_message

logger = logging.getLogger(__name__)

MAX_DELIVERY_ATTEMPTS = 5


class RetryResult(Enum):
    DELIVERED = "delivered"
    RETRIED = "retried"
    ABANDONED = "abandoned"


@dataclass
class DrainReport:
    delivered: int = 0
    retried: int = 0
    abandoned: int = 0
    failed: int = 0


class PendingQueue:
    """Durable retry queue for order notifications that failed at send time.

    The ledger holds the entries; `numbers` mirrors their order numbers for a
    cheap local count.
    """

    def __init__(self, *, ledger, messaging, system_log, max_attempts: int = MAX_DELIVERY_ATTEMPTS):
        self.ledger = ledger
        self.messaging = messaging
        self.system_log = system_log
        self.max_attempts = max_attempts
        self.numbers: dict[str, None] = {}
        self._draining = False

    def __len__(self) -> int:
        return len(self.numbers)

    @property
    def is_draining(self) -> bool:
        return self._draining

    async def enqueue(self, order: Order) -> None:
        await self.ledger.enqueue_pending(order.number, order.snapshot())
        self.numbers[order.number] = None
        await self.system_log.info(f"Pedido {order.number} adicionado à fila de pendentes")

    async def sync(self) -> None:
        """Reloads the mirror from the ledger."""
        entries = await self.ledger.list_pending()
        self.numbers = {entry.order_number: None for entry in entries}

    async def _messaging_ready(self) -> bool:
        if self.messaging.is_online:
            return True
        return await self.messaging.check_connection()

    async def drain(self) -> DrainReport | None:
        """Retries every pending entry once, oldest first. Returns None when skipped."""
        if self._draining:
            logger.info("Pending queue drain already running, skipping")
            return None
        self._draining = True
        try:
            if not await self._messaging_ready():
                logger.info("WhatsApp offline, pending queue drain skipped")
                return None
            return await self._drain()
        finally:
            self._draining = False

    async def _drain(self) -> DrainReport:
        report = DrainReport()
        async with continue_on_error(self.system_log, "Erro ao processar fila de pendentes") as outcome:
            entries = await self.ledger.list_pending()
            self.numbers = {entry.order_number: None for entry in entries}
            if not entries:
                logger.info("No pending deliveries to retry.")
                return report

            logger.info(f"Retrying {len(entries)} pending deliveries")
            for entry in entries:
                async with continue_on_error(
                    self.system_log, f"Erro ao reenviar pedido pendente #{entry.order_number}"
                ) as step:
                    result = await self._retry(entry)
                    if result is RetryResult.DELIVERED:
                        report.delivered += 1
                    elif result is RetryResult.ABANDONED:
                        report.abandoned += 1
                    else:
                        report.retried += 1
                if step.failed:
                    report.failed += 1
        if outcome.failed:
            report.failed += 1
        await self.system_log.info(
            f"Fila de pendentes processada: {report.delivered} entregues, {report.retried} reagendados, "
            f"{report.abandoned} abandonados, {report.failed} com erro"
        )
        return report

    async def _abandon_undecodable(self, entry: PendingDelivery, error: ValidationError) -> RetryResult:
        await self.ledger.dequeue_pending(entry.order_number)
        self.numbers.pop(entry.order_number, None)
        await self.system_log.error(
            f"Pedido #{entry.order_number} removido da fila: dados do pedido ilegíveis", error
        )
        return RetryResult.ABANDONED

    async def _retry(self, entry: PendingDelivery) -> RetryResult:
        attempt = entry.attempts + 1
        try:
            order = entry.order()
        except ValidationError as e:
            # Retrying cannot repair a stored snapshot.
            return await self._abandon_undecodable(entry, e)
        try:
            await self.messaging.send(format_retry_message(order, attempt))
        except Exception as e:
            await self.ledger.update_attempts(entry.order_number, attempt)
            if attempt >= self.max_attempts:
                await self.ledger.dequeue_pending(entry.order_number)
                self.numbers.pop(entry.order_number, None)
                await self.system_log.error(
                    f"Pedido #{entry.order_number} removido da fila após {attempt} tentativas", e
                )
                return RetryResult.ABANDONED
            await self.system_log.warning(
                f"Tentativa {attempt} de reenvio do pedido #{entry.order_number} falhou: {e}"
            )
            return RetryResult.RETRIED

        await self.ledger.dequeue_pending(entry.order_number)
        self.numbers.pop(entry.order_number, None)
        await self.system_log.success(f"Pedido pendente #{entry.order_number} enviado na tentativa {attempt}")
        return RetryResult.DELIVERED
