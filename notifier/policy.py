from contextlib import asynccontextmanager
from dataclasses import dataclass


@dataclass
class StepOutcome:
    failed: bool = False
    error: Exception | None = None


@asynccontextmanager
async def continue_on_error(system_log, context: str):
    """Runs one unit of work; a failure is logged and swallowed so the caller's loop continues.

        async with continue_on_error(system_log, f"Erro ao processar pedido #{n}") as outcome:
            ...
        if outcome.failed:
            ...
    """
    outcome = StepOutcome()
    try:
        yield outcome
    except Exception as exc:
        outcome.failed = True
        outcome.error = exc
        await system_log.error(context, exc)
