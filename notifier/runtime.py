import logging

from notifier.config import Settings
from notifier.db import Ledger
from notifier.exceptions import ConfigurationMissing, DependencyUnavailable, StoreUnavailable
from notifier.health import HealthGate
from notifier.pending_queue import PendingQueue
from notifier.reconciler import Reconciler
from notifier.system_log import SystemLog
from notifier.utils.formatter import format_system_status
from notifier.utils.whatsapp import WhatsAppClient
from notifier.utils.woocommerce import WooCommerceClient

logger = logging.getLogger(__name__)


class Runtime:
    """Service objects for one process, built once from Settings."""

    def __init__(self, settings: Settings, *, ledger=None, commerce=None, messaging=None):
        self.settings = settings
        self.ledger = ledger if ledger is not None else Ledger(
            settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )
        self.commerce = commerce if commerce is not None else WooCommerceClient(
            settings.woocommerce_url,
            settings.woocommerce_consumer_key,
            settings.woocommerce_consumer_secret,
        )
        self.messaging = messaging if messaging is not None else WhatsAppClient(
            settings.whatsapp_api_url,
            settings.whatsapp_api_version,
            settings.whatsapp_access_token,
            settings.whatsapp_phone_number_id,
            settings.whatsapp_target_phone,
        )
        self.system_log = SystemLog(self.ledger)
        self.health_gate = HealthGate(
            commerce=self.commerce,
            ledger=self.ledger,
            messaging=self.messaging,
            system_log=self.system_log,
        )
        self.pending_queue = PendingQueue(
            ledger=self.ledger,
            messaging=self.messaging,
            system_log=self.system_log,
            max_attempts=settings.max_delivery_attempts,
        )
        self.reconciler = Reconciler(
            ledger=self.ledger,
            commerce=self.commerce,
            messaging=self.messaging,
            health_gate=self.health_gate,
            pending_queue=self.pending_queue,
            system_log=self.system_log,
            max_orders=settings.max_orders_to_check,
            retention_days=settings.processed_retention_days,
            log_retention_rows=settings.log_retention_rows,
        )
        self.started = False

    @classmethod
    def from_env(cls) -> "Runtime":
        return cls(Settings.from_env())

    async def start(self) -> None:
        """Connects the ledger and loads the pending mirror. An unreachable ledger leaves it offline."""
        if self.started:
            return
        try:
            await self.ledger.connect()
        except StoreUnavailable as e:
            logger.error(f"Starting without database: {e}")
        else:
            await self.pending_queue.sync()
        if not self.settings.woocommerce_configured:
            logger.warning("WooCommerce credentials not configured")
        if not self.settings.whatsapp_configured:
            logger.warning("WhatsApp credentials not configured")
        self.started = True
        await self.system_log.system(f"Sistema iniciado, {len(self.pending_queue)} pedidos pendentes na fila")

    async def close(self) -> None:
        if not self.started:
            return
        self.started = False
        self.reconciler.stop()
        await self.commerce.close()
        await self.messaging.close()
        await self.ledger.close()
        logger.info("Runtime closed")

    async def send_status_summary(self) -> bool:
        """Sends the dependency summary to the messaging channel; False when it could not be delivered."""
        text = format_system_status(
            self.health_gate.snapshot_online(),
            len(self.pending_queue),
            self.reconciler.last_check,
        )
        try:
            await self.messaging.send(text)
        except (DependencyUnavailable, ConfigurationMissing) as e:
            logger.warning(f"Status summary not sent: {e}")
            return False
        return True
