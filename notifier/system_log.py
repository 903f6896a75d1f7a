import logging
from enum import Enum

from notifier.exceptions import StoreUnavailable

logger = logging.getLogger("notifier.system")


class LogCategory(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"
    SYSTEM = "system"


_LEVELS = {
    LogCategory.INFO: logging.INFO,
    LogCategory.WARNING: logging.WARNING,
    LogCategory.ERROR: logging.ERROR,
    LogCategory.SUCCESS: logging.INFO,
    LogCategory.SYSTEM: logging.INFO,
}


def describe_error(error: BaseException) -> str:
    return f"{type(error).__name__}: {error}"


class SystemLog:
    """Writes entries to the process log and to the ledger's system_log table.

    The ledger copy is best-effort: while the ledger is unreachable entries only
    reach the process log.
    """

    def __init__(self, ledger):
        self.ledger = ledger

    async def record(self, category: LogCategory, message: str) -> None:
        logger.log(_LEVELS[category], f"[{category.value.upper()}] {message}")
        if not self.ledger.is_connected:
            return
        try:
            await self.ledger.write_log(category.value, message)
        except StoreUnavailable as e:
            logger.warning(f"Could not persist system log entry: {e}")

    async def info(self, message: str) -> None:
        await self.record(LogCategory.INFO, message)

    async def warning(self, message: str) -> None:
        await self.record(LogCategory.WARNING, message)

    async def success(self, message: str) -> None:
        await self.record(LogCategory.SUCCESS, message)

    async def system(self, message: str) -> None:
        await self.record(LogCategory.SYSTEM, message)

    async def error(self, message: str, error: BaseException | None = None) -> None:
        if error is not None:
            message = f"{message} | {describe_error(error)}"
            logger.debug("Traceback for logged error", exc_info=error)
        await self.record(LogCategory.ERROR, message)
