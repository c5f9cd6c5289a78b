import asyncio
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)


class PeriodicSweeper:
    """
    Runs a synchronous sweep function on a fixed interval in the event loop.

    The sweep runs to completion between awaits, so it never overlaps with
    itself or with request handlers mutating the same in-memory maps.
    """

    def __init__(self, name: str, sweep: Callable[[], object], interval_seconds: float) -> None:
        self.name = name
        self._sweep = sweep
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"sweeper:{self.name}")
        logger.info(f"Started {self.name} sweeper (every {self._interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Stopped {self.name} sweeper")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self._sweep()
            except Exception:
                logger.exception(f"{self.name} sweep failed")
