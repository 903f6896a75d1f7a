import logging
from datetime import datetime, timezone

import httpx

from notifier.exceptions import CommerceUnavailable, ConfigurationMissing
from notifier.models import Order

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 30.0
PROBE_TIMEOUT = 10.0
API_PATH = "/wp-json/wc/v3"


class WooCommerceClient:
    """Read-only access to the store's orders."""

    def __init__(
        self,
        base_url: str | None,
        consumer_key: str | None,
        consumer_secret: str | None,
        *,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self._client = client
        self.is_online = False
        self.last_check: datetime | None = None
        self.last_error: str | None = None

    @property
    def configured(self) -> bool:
        return all([self.base_url, self.consumer_key, self.consumer_secret])

    def _require_config(self) -> None:
        if self.configured:
            return
        missing = [
            name for name, value in (
                ("WOOCOMMERCE_URL", self.base_url),
                ("WOOCOMMERCE_CONSUMER_KEY", self.consumer_key),
                ("WOOCOMMERCE_CONSUMER_SECRET", self.consumer_secret),
            ) if not value
        ]
        logger.error(f"WC API credentials missing: {', '.join(missing)}")
        raise ConfigurationMissing("Missing WC API configuration.", missing=missing)

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self.base_url}{API_PATH}",
                auth=(self.consumer_key, self.consumer_secret),
                timeout=HTTP_TIMEOUT,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get(self, path: str, params: dict | None = None, timeout: float = HTTP_TIMEOUT) -> httpx.Response:
        self._require_config()
        try:
            response = await self._http().get(path, params=params, timeout=timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self.is_online = False
            self.last_error = f"HTTP {e.response.status_code}"
            logger.error(f"HTTP error fetching WC {path}: {e.response.status_code} - {e.response.text}")
            raise CommerceUnavailable(
                f"WooCommerce answered {e.response.status_code} for {path}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            self.is_online = False
            self.last_error = str(e) or type(e).__name__
            logger.error(f"Network error fetching WC {path}: {e!r}")
            raise CommerceUnavailable(f"WooCommerce unreachable: {e!r}") from e
        return response

    @staticmethod
    def _json(response: httpx.Response):
        try:
            return response.json()
        except ValueError as e:
            raise CommerceUnavailable(f"WooCommerce returned invalid JSON: {e}") from e

    async def check_connection(self) -> bool:
        """Probes the API with a one-product listing."""
        if not self.configured:
            self.is_online = False
            return False
        try:
            await self._get("/products", params={"per_page": 1}, timeout=PROBE_TIMEOUT)
        except CommerceUnavailable:
            return False
        self.is_online = True
        self.last_error = None
        return True

    async def fetch_recent_orders(self, limit: int = 10) -> list[Order]:
        """Newest orders in a processing status; an empty list means none, errors raise."""
        params = {"per_page": limit, "orderby": "date", "order": "desc", "status": "processing"}
        response = await self._get("/orders", params=params)
        payloads = self._json(response)
        if not isinstance(payloads, list):
            raise CommerceUnavailable(f"Unexpected orders payload: {type(payloads).__name__}")

        self.is_online = True
        self.last_check = datetime.now(timezone.utc)

        orders = []
        for payload in payloads:
            if not isinstance(payload, dict):
                logger.warning(f"Skipping malformed WC order payload of type {type(payload).__name__}")
                continue
            orders.append(Order.from_upstream(payload))

        eligible = [order for order in orders if order.is_eligible()]
        logger.info(f"Fetched {len(payloads)} orders from WC, {len(eligible)} in processing status.")
        return eligible

    async def fetch_order_by_id(self, order_id: int) -> Order:
        response = await self._get(f"/orders/{order_id}")
        payload = self._json(response)
        if not isinstance(payload, dict):
            raise CommerceUnavailable(f"Unexpected payload for WC order {order_id}")
        return Order.from_upstream(payload)

    async def get_stats(self) -> dict:
        """Number of orders waiting in processing status, read from X-WP-Total."""
        try:
            response = await self._get("/orders", params={"per_page": 1, "status": "processing"})
        except (CommerceUnavailable, ConfigurationMissing) as e:
            logger.warning(f"Could not read WC stats: {e}")
            return {"total_processing": 0, "last_check": self.last_check, "is_online": False}
        try:
            total = int(response.headers.get("x-wp-total", "0"))
        except ValueError:
            total = 0
        return {"total_processing": total, "last_check": self.last_check, "is_online": self.is_online}
