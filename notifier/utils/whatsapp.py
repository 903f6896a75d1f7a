import logging

import httpx

from notifier.exceptions import ConfigurationMissing, MessagingUnavailable

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 15.0
PROBE_TIMEOUT = 10.0


class WhatsAppClient:
    """Sends text messages to one configured phone through the WhatsApp Cloud API."""

    def __init__(
        self,
        api_url: str,
        api_version: str,
        access_token: str | None,
        phone_number_id: str | None,
        target_phone: str | None,
        *,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_version = api_version
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.target_phone = target_phone
        self._client = client
        self.is_online = False
        self.last_error: str | None = None
        self.error_count = 0

    @property
    def configured(self) -> bool:
        return all([self.access_token, self.phone_number_id, self.target_phone])

    def _require_config(self) -> None:
        missing = [
            name for name, value in (
                ("WHATSAPP_ACCESS_TOKEN", self.access_token),
                ("WHATSAPP_PHONE_NUMBER_ID", self.phone_number_id),
                ("WHATSAPP_TARGET_PHONE", self.target_phone),
            ) if not value
        ]
        if missing:
            logger.error(f"WhatsApp configuration missing: {', '.join(missing)}")
            raise ConfigurationMissing("Missing WhatsApp configuration.", missing=missing)

    def _auth_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.api_url, timeout=HTTP_TIMEOUT)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _record_failure(self, error: str) -> None:
        self.is_online = False
        self.last_error = error
        self.error_count += 1

    async def check_connection(self) -> bool:
        """Reads the sender phone number resource; a 200 means the API and token work."""
        if not self.configured:
            self.is_online = False
            self.last_error = "WhatsApp credentials not configured"
            return False
        url = f"/{self.api_version}/{self.phone_number_id}"
        try:
            response = await self._http().get(url, headers=self._auth_headers(), timeout=PROBE_TIMEOUT)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self._record_failure(f"HTTP {e.response.status_code}")
            logger.error(f"WhatsApp API probe failed: {e.response.status_code} - {e.response.text}")
            return False
        except httpx.HTTPError as e:
            self._record_failure(str(e) or type(e).__name__)
            logger.error(f"WhatsApp API unreachable: {e!r}")
            return False
        self.is_online = True
        self.error_count = 0
        self.last_error = None
        return True

    async def send(self, text: str) -> None:
        """Delivers one text message. Raises MessagingUnavailable or ConfigurationMissing."""
        self._require_config()
        if not self.is_online and not await self.check_connection():
            raise MessagingUnavailable("WhatsApp API está offline")

        payload = {
            "messaging_product": "whatsapp",
            "to": self.target_phone,
            "type": "text",
            "text": {"body": text},
        }
        url = f"/{self.api_version}/{self.phone_number_id}/messages"
        try:
            response = await self._http().post(url, json=payload, headers=self._auth_headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self._record_failure(f"HTTP {e.response.status_code}")
            logger.error(f"HTTP error sending WhatsApp message: {e.response.status_code} - {e.response.text}")
            raise MessagingUnavailable(
                f"WhatsApp answered {e.response.status_code}", status_code=e.response.status_code
            ) from e
        except httpx.HTTPError as e:
            self._record_failure(str(e) or type(e).__name__)
            logger.error(f"Network error sending WhatsApp message: {e!r}")
            raise MessagingUnavailable(f"WhatsApp unreachable: {e!r}") from e

        self.error_count = 0
        self.last_error = None
        logger.info("WhatsApp message sent")

    def error_info(self) -> dict:
        return {
            "is_online": self.is_online,
            "configured": self.configured,
            "last_error": self.last_error,
            "error_count": self.error_count,
        }
