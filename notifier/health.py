import logging
from dataclasses import dataclass
from enum import Enum

from notifier.exceptions import ConfigurationMissing, DependencyUnavailable
from notifier.utils.formatter import AlertKind, format_alert

logger = logging.getLogger(__name__)


class Dependency(str, Enum):
    COMMERCE = "woocommerce"
    LEDGER = "database"
    MESSAGING = "whatsapp"


def alert_kind_for(dependency: Dependency) -> AlertKind:
    match dependency:
        case Dependency.COMMERCE:
            return AlertKind.COMMERCE
        case Dependency.LEDGER:
            return AlertKind.LEDGER
        case Dependency.MESSAGING:
            return AlertKind.MESSAGING
    raise ValueError(f"Unknown dependency: {dependency!r}")


OUTAGE_DETAILS = {
    Dependency.COMMERCE: "API do WooCommerce está indisponível",
    Dependency.LEDGER: "Banco de dados está offline",
    Dependency.MESSAGING: "API do WhatsApp está indisponível",
}


@dataclass
class DependencyState:
    online: bool = False
    alert_sent: bool = False
    outage_logged: bool = False


@dataclass(frozen=True)
class HealthReport:
    commerce_online: bool
    ledger_online: bool
    messaging_online: bool

    @property
    def can_fetch(self) -> bool:
        # Idempotency depends on the ledger, so both are required before fetching.
        return self.commerce_online and self.ledger_online

    @property
    def all_online(self) -> bool:
        return self.commerce_online and self.ledger_online and self.messaging_online

    def as_dict(self) -> dict:
        return {
            Dependency.COMMERCE.value: self.commerce_online,
            Dependency.LEDGER.value: self.ledger_online,
            Dependency.MESSAGING.value: self.messaging_online,
        }


class HealthGate:
    """Tracks dependency health and sends one alert per outage."""

    def __init__(self, *, commerce, ledger, messaging, system_log):
        self.commerce = commerce
        self.ledger = ledger
        self.messaging = messaging
        self.system_log = system_log
        self.states = {dependency: DependencyState() for dependency in Dependency}
        # Dependencies that came back online in the latest check_all.
        self.recovered: set[Dependency] = set()

    async def probe(self) -> HealthReport:
        """Live probes only, no state change and no alerting."""
        return HealthReport(
            commerce_online=await self.commerce.check_connection(),
            ledger_online=await self.ledger.health_check(),
            messaging_online=await self.messaging.check_connection(),
        )

    async def check_all(self) -> HealthReport:
        report = await self.probe()
        self.recovered = set()
        # Messaging first, so alerts about the other two see its current state.
        await self._transition(Dependency.MESSAGING, report.messaging_online)
        await self._transition(Dependency.COMMERCE, report.commerce_online)
        await self._transition(Dependency.LEDGER, report.ledger_online)
        return report

    async def _transition(self, dependency: Dependency, online: bool) -> None:
        state = self.states[dependency]
        was_online = state.online
        state.online = online

        if online:
            if not was_online:
                logger.info(f"{dependency.value} is online")
                self.recovered.add(dependency)
            state.alert_sent = False
            state.outage_logged = False
            return

        if state.alert_sent:
            return
        if not state.outage_logged:
            await self.system_log.warning(f"{dependency.value} está offline")
            state.outage_logged = True
        if dependency is Dependency.MESSAGING:
            # The channel cannot report its own outage.
            state.alert_sent = True
            return
        state.alert_sent = await self._send_alert(dependency)

    async def _send_alert(self, dependency: Dependency) -> bool:
        if not self.states[Dependency.MESSAGING].online:
            logger.warning(f"Alert for {dependency.value} postponed: WhatsApp is offline")
            return False
        text = format_alert(alert_kind_for(dependency), OUTAGE_DETAILS[dependency])
        try:
            await self.messaging.send(text)
        except (DependencyUnavailable, ConfigurationMissing) as e:
            await self.system_log.error(f"Erro ao enviar alerta de {dependency.value}", e)
            return False
        await self.system_log.info(f"Alerta de {dependency.value} enviado via WhatsApp")
        return True

    def snapshot_online(self) -> dict[str, bool]:
        return {dependency.value: state.online for dependency, state in self.states.items()}

    def snapshot(self) -> dict:
        return {
            dependency.value: {"online": state.online, "alert_sent": state.alert_sent}
            for dependency, state in self.states.items()
        }
