from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from notifier.exceptions import CommerceUnavailable, MessagingUnavailable, StoreUnavailable
from notifier.health import HealthGate
from notifier.models import LedgerStats, Order, PendingDelivery, SystemLogEntry
from notifier.pending_queue import PendingQueue
from notifier.reconciler import Reconciler
from notifier.system_log import SystemLog

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class InMemoryLedger:
    """Ledger double with the same interface as notifier.db.Ledger."""

    def __init__(self) -> None:
        self.online = True
        self.connected = False
        self.processed: dict[str, datetime] = {}
        self.pending: dict[str, PendingDelivery] = {}
        self.logs: list[SystemLogEntry] = []
        self._clock = 0

    def _tick(self) -> datetime:
        self._clock += 1
        return BASE_TIME + timedelta(seconds=self._clock)

    def _require_online(self) -> None:
        if not self.online:
            raise StoreUnavailable("Database pool not available")

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def connect(self) -> None:
        self._require_online()
        self.connected = True

    async def close(self) -> None:
        self.connected = False

    async def is_processed(self, order_number: str) -> bool:
        self._require_online()
        return order_number in self.processed

    async def mark_processed(self, order_number: str) -> None:
        self._require_online()
        self.processed.setdefault(order_number, self._tick())

    async def enqueue_pending(self, order_number: str, snapshot: dict) -> None:
        self._require_online()
        if order_number not in self.pending:
            self.pending[order_number] = PendingDelivery(
                order_number=order_number, snapshot=snapshot, created_at=self._tick()
            )

    async def dequeue_pending(self, order_number: str) -> None:
        self._require_online()
        self.pending.pop(order_number, None)

    async def list_pending(self) -> list[PendingDelivery]:
        self._require_online()
        return sorted(self.pending.values(), key=lambda entry: entry.created_at)

    async def update_attempts(self, order_number: str, attempts: int) -> None:
        self._require_online()
        entry = self.pending.get(order_number)
        if entry is not None:
            self.pending[order_number] = entry.model_copy(
                update={"attempts": attempts, "last_attempt_at": self._tick()}
            )

    async def purge_processed_older_than(self, days: int = 30) -> int:
        self._require_online()
        cutoff = BASE_TIME - timedelta(days=days)
        stale = [number for number, at in self.processed.items() if at < cutoff]
        for number in stale:
            del self.processed[number]
        return len(stale)

    async def health_check(self) -> bool:
        # Reconnects like the real ledger once the database answers again.
        if self.online:
            self.connected = True
        return self.online

    async def stats(self) -> LedgerStats:
        self._require_online()
        return LedgerStats(processed=len(self.processed), pending=len(self.pending), online=True)

    async def write_log(self, category: str, message: str) -> None:
        self._require_online()
        self.logs.append(SystemLogEntry(category=category, message=message, logged_at=self._tick()))

    async def recent_logs(self, limit: int = 50) -> list[SystemLogEntry]:
        self._require_online()
        return list(reversed(self.logs))[:limit]

    async def trim_logs(self, keep: int = 1000) -> int:
        self._require_online()
        removed = max(len(self.logs) - keep, 0)
        self.logs = self.logs[removed:]
        return removed


class FakeCommerce:
    """Returns whatever orders it holds, eligible or not."""

    def __init__(self, orders: list[Order] | None = None) -> None:
        self.orders = list(orders or [])
        self.online = True
        self.is_online = True
        self.fetch_calls = 0
        self.closed = False

    async def check_connection(self) -> bool:
        self.is_online = self.online
        return self.online

    async def fetch_recent_orders(self, limit: int = 10) -> list[Order]:
        self.fetch_calls += 1
        if not self.online:
            raise CommerceUnavailable("WooCommerce unreachable")
        return self.orders[:limit]

    async def get_stats(self) -> dict:
        return {"total_processing": len(self.orders), "last_check": None, "is_online": self.online}

    async def close(self) -> None:
        self.closed = True


class FakeMessaging:
    """Records sent texts; `failures` makes that many upcoming sends fail."""

    def __init__(self) -> None:
        self.reachable = True
        self.is_online = True
        self.failures = 0
        self.sent: list[str] = []
        self.attempts = 0
        self.closed = False

    async def check_connection(self) -> bool:
        self.is_online = self.reachable
        return self.reachable

    async def send(self, text: str) -> None:
        self.attempts += 1
        if self.failures > 0 or not self.reachable:
            self.failures = max(self.failures - 1, 0)
            self.is_online = False
            raise MessagingUnavailable("WhatsApp unreachable")
        self.sent.append(text)

    def error_info(self) -> dict:
        return {"is_online": self.is_online, "configured": True, "last_error": None, "error_count": 0}

    async def close(self) -> None:
        self.closed = True


def make_order(number: str, status: str = "processing", **overrides: Any) -> Order:
    raw = {
        "id": int(number) if number.isdigit() else 1,
        "number": number,
        "status": status,
        "subtotal": "100.00",
        "shipping_total": "15.50",
        "total": "115.50",
        "payment_method_title": "Pix",
        "shipping_lines": [{"method_title": "SEDEX"}],
        "billing": {
            "first_name": "Ana",
            "last_name": "Souza",
            "email": "ana@example.com",
            "phone": "11999990000",
        },
        "shipping": {
            "address_1": "Rua das Flores, 10",
            "city": "São Paulo",
            "state": "SP",
            "postcode": "01000-000",
            "country": "BR",
        },
        "line_items": [{"name": "Camiseta", "quantity": 2, "price": "50.00", "total": "100.00"}],
        "date_created": "2024-05-01T10:00:00",
    }
    raw.update(overrides)
    return Order.from_upstream(raw)


class Harness:
    def __init__(self, orders: list[Order] | None = None) -> None:
        self.ledger = InMemoryLedger()
        self.ledger.connected = True
        self.commerce = FakeCommerce(orders)
        self.messaging = FakeMessaging()
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
        )
        self.reconciler = Reconciler(
            ledger=self.ledger,
            commerce=self.commerce,
            messaging=self.messaging,
            health_gate=self.health_gate,
            pending_queue=self.pending_queue,
            system_log=self.system_log,
        )


@pytest.fixture
def harness() -> Harness:
    return Harness()
