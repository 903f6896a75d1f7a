import os

from pydantic import BaseModel


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Settings(BaseModel):
    """Runtime configuration, read once from the environment."""

    database_url: str | None = None
    db_pool_min_size: int = 1
    db_pool_max_size: int = 10

    woocommerce_url: str | None = None
    woocommerce_consumer_key: str | None = None
    woocommerce_consumer_secret: str | None = None

    whatsapp_api_url: str = "https://graph.facebook.com"
    whatsapp_api_version: str = "v17.0"
    whatsapp_access_token: str | None = None
    whatsapp_phone_number_id: str | None = None
    whatsapp_target_phone: str | None = None

    check_interval_minutes: int = 15
    queue_interval_minutes: int = 5
    max_orders_to_check: int = 10
    max_delivery_attempts: int = 5
    processed_retention_days: int = 30
    log_retention_rows: int = 1000

    celery_broker_url: str = "redis://redis:6379/0"
    celery_result_backend: str = "redis://redis:6379/0"

    log_file: str = "notifier_worker.log"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL"),
            db_pool_min_size=_int_env("DB_POOL_MIN_SIZE", 1),
            db_pool_max_size=_int_env("DB_POOL_MAX_SIZE", 10),
            woocommerce_url=os.getenv("WOOCOMMERCE_URL"),
            woocommerce_consumer_key=os.getenv("WOOCOMMERCE_CONSUMER_KEY"),
            woocommerce_consumer_secret=os.getenv("WOOCOMMERCE_CONSUMER_SECRET"),
            whatsapp_api_url=os.getenv("WHATSAPP_API_URL", "https://graph.facebook.com"),
            whatsapp_api_version=os.getenv("WHATSAPP_API_VERSION", "v17.0"),
            whatsapp_access_token=os.getenv("WHATSAPP_ACCESS_TOKEN"),
            whatsapp_phone_number_id=os.getenv("WHATSAPP_PHONE_NUMBER_ID"),
            whatsapp_target_phone=os.getenv("WHATSAPP_TARGET_PHONE"),
            check_interval_minutes=_int_env("CHECK_INTERVAL_MINUTES", 15),
            queue_interval_minutes=_int_env("QUEUE_INTERVAL_MINUTES", 5),
            max_orders_to_check=_int_env("MAX_ORDERS_TO_CHECK", 10),
            max_delivery_attempts=_int_env("MAX_DELIVERY_ATTEMPTS", 5),
            processed_retention_days=_int_env("PROCESSED_RETENTION_DAYS", 30),
            log_retention_rows=_int_env("LOG_RETENTION_ROWS", 1000),
            celery_broker_url=os.getenv("CELERY_BROKER_URL", "redis://redis:6379/0"),
            celery_result_backend=os.getenv("CELERY_RESULT_BACKEND", "redis://redis:6379/0"),
            log_file=os.getenv("LOG_FILE", "notifier_worker.log"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def woocommerce_configured(self) -> bool:
        return all([self.woocommerce_url, self.woocommerce_consumer_key, self.woocommerce_consumer_secret])

    @property
    def whatsapp_configured(self) -> bool:
        return all([self.whatsapp_access_token, self.whatsapp_phone_number_id, self.whatsapp_target_phone])
