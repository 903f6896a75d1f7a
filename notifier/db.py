import asyncio
import json
import logging
from contextlib import asynccontextmanager

import asyncpg

from notifier.exceptions import StoreUnavailable
from notifier.models import LedgerStats, PendingDelivery, SystemLogEntry

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS processed_orders (
        id SERIAL PRIMARY KEY,
        order_number TEXT UNIQUE NOT NULL,
        processed_at TIMESTAMPTZ DEFAULT now()
    );
    CREATE INDEX IF NOT EXISTS idx_processed_orders_processed_at ON processed_orders(processed_at);

    CREATE TABLE IF NOT EXISTS pending_deliveries (
        id SERIAL PRIMARY KEY,
        order_number TEXT UNIQUE NOT NULL,
        order_snapshot JSONB NOT NULL,
        attempts INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMPTZ DEFAULT now(),
        last_attempt_at TIMESTAMPTZ
    );
    CREATE INDEX IF NOT EXISTS idx_pending_deliveries_created_at ON pending_deliveries(created_at);

    CREATE TABLE IF NOT EXISTS system_log (
        id SERIAL PRIMARY KEY,
        category VARCHAR(50) NOT NULL,
        message TEXT NOT NULL,
        logged_at TIMESTAMPTZ DEFAULT now()
    );
    CREATE INDEX IF NOT EXISTS idx_system_log_category ON system_log(category);
    CREATE INDEX IF NOT EXISTS idx_system_log_logged_at ON system_log(logged_at);
"""

# Connection-level failures; anything else is a programming error and propagates.
STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, ConnectionError, asyncio.TimeoutError)


def rows_affected(status: str) -> int:
    """Extracts the row count from an asyncpg command tag such as 'DELETE 3'."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0


class Ledger:
    """Durable store of processed markers, pending deliveries and the system log."""

    def __init__(self, dsn: str | None, *, min_size: int = 1, max_size: int = 10):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self._pool = None

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    async def connect(self) -> None:
        """Creates the asyncpg pool and the schema."""
        if not self.dsn:
            logger.error("DATABASE_URL is not set. Cannot initialize DB Pool.")
            raise StoreUnavailable("DATABASE_URL is not set")
        try:
            self._pool = await asyncpg.create_pool(dsn=self.dsn, min_size=self.min_size, max_size=self.max_size)
        except STORE_ERRORS as e:
            self._pool = None
            logger.exception("Failed to initialize database connection pool")
            raise StoreUnavailable(f"Could not connect to database: {e}") from e
        logger.info("Database connection pool initialized.")
        await self.init_schema()

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Database connection pool closed.")

    @asynccontextmanager
    async def _connection(self):
        if self._pool is None:
            raise StoreUnavailable("Database pool not available")
        try:
            async with self._pool.acquire() as conn:
                yield conn
        except STORE_ERRORS as e:
            raise StoreUnavailable(f"Database error: {e}") from e

    async def init_schema(self) -> None:
        async with self._connection() as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("Database schema ready.")

    async def is_processed(self, order_number: str) -> bool:
        async with self._connection() as conn:
            row = await conn.fetchrow("SELECT 1 FROM processed_orders WHERE order_number = $1", order_number)
        return row is not None

    async def mark_processed(self, order_number: str) -> None:
        async with self._connection() as conn:
            await conn.execute("""
                INSERT INTO processed_orders (order_number)
                VALUES ($1)
                ON CONFLICT (order_number) DO NOTHING
            """, order_number)
        logger.info(f"Order {order_number} marked as processed")

    async def enqueue_pending(self, order_number: str, snapshot: dict) -> None:
        async with self._connection() as conn:
            await conn.execute("""
                INSERT INTO pending_deliveries (order_number, order_snapshot)
                VALUES ($1, $2)
                ON CONFLICT (order_number) DO NOTHING
            """, order_number, json.dumps(snapshot))
        logger.info(f"Order {order_number} saved to pending_deliveries")

    async def dequeue_pending(self, order_number: str) -> None:
        async with self._connection() as conn:
            await conn.execute("DELETE FROM pending_deliveries WHERE order_number = $1", order_number)

    async def list_pending(self) -> list[PendingDelivery]:
        """Pending entries, oldest first."""
        async with self._connection() as conn:
            rows = await conn.fetch("""
                SELECT order_number, order_snapshot, attempts, created_at, last_attempt_at
                FROM pending_deliveries
                ORDER BY created_at ASC, id ASC
            """)
        entries = []
        for row in rows:
            snapshot = row["order_snapshot"]
            if isinstance(snapshot, str):
                snapshot = json.loads(snapshot)
            entries.append(PendingDelivery(
                order_number=row["order_number"],
                snapshot=snapshot,
                attempts=row["attempts"],
                created_at=row["created_at"],
                last_attempt_at=row["last_attempt_at"],
            ))
        return entries

    async def update_attempts(self, order_number: str, attempts: int) -> None:
        async with self._connection() as conn:
            await conn.execute("""
                UPDATE pending_deliveries
                SET attempts = $1,
                    last_attempt_at = now()
                WHERE order_number = $2
            """, attempts, order_number)

    async def purge_processed_older_than(self, days: int = 30) -> int:
        async with self._connection() as conn:
            status = await conn.execute(
                "DELETE FROM processed_orders WHERE processed_at < now() - make_interval(days => $1)",
                days,
            )
        removed = rows_affected(status)
        if removed:
            logger.info(f"{removed} processed orders older than {days} days removed")
        return removed

    async def health_check(self) -> bool:
        """SELECT 1 on the pool; without a pool, tries to connect first."""
        if self._pool is None:
            if not self.dsn:
                return False
            try:
                await self.connect()
            except StoreUnavailable:
                return False
        try:
            async with self._connection() as conn:
                await conn.fetchval("SELECT 1")
        except StoreUnavailable as e:
            logger.warning(f"Database health check failed: {e}")
            return False
        return True

    async def stats(self) -> LedgerStats:
        async with self._connection() as conn:
            processed = await conn.fetchval("SELECT COUNT(*) FROM processed_orders")
            pending = await conn.fetchval("SELECT COUNT(*) FROM pending_deliveries")
        return LedgerStats(processed=processed or 0, pending=pending or 0, online=True)

    async def write_log(self, category: str, message: str) -> None:
        async with self._connection() as conn:
            await conn.execute("INSERT INTO system_log (category, message) VALUES ($1, $2)", category, message)

    async def recent_logs(self, limit: int = 50) -> list[SystemLogEntry]:
        async with self._connection() as conn:
            rows = await conn.fetch("""
                SELECT category, message, logged_at
                FROM system_log
                ORDER BY logged_at DESC, id DESC
                LIMIT $1
            """, limit)
        return [SystemLogEntry(category=row["category"], message=row["message"], logged_at=row["logged_at"])
                for row in rows]

    async def trim_logs(self, keep: int = 1000) -> int:
        """Deletes all but the newest `keep` system log rows."""
        async with self._connection() as conn:
            status = await conn.execute("""
                DELETE FROM system_log
                WHERE id NOT IN (
                    SELECT id FROM system_log ORDER BY logged_at DESC, id DESC LIMIT $1
                )
            """, keep)
        return rows_affected(status)
