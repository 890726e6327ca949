"""Polling scheduler for real-time view refresh.

IDLE --(enable)--> POLLING --(every interval)--> refresh --(disable/close)--> IDLE

The scheduler does not capture any query state: each tick calls the
owner's refresh coroutine, which reads the filters, sort and page that are
current at fire time.

Ticks run at a fixed cadence with no retry, backoff or jitter. A failed
tick is logged and the next one fires on schedule. A tick that overruns
the interval skips the missed slots rather than firing twice.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 30.0


class PollState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"


class PollingScheduler:
    """Runs ``refresh`` every ``interval`` seconds while enabled.

    Example:
        scheduler = PollingScheduler(view.refresh, interval=30.0)
        scheduler.enable()
        ...
        await scheduler.disable()  # no refresh fires after this returns
    """

    def __init__(
        self,
        refresh: Callable[[], Awaitable[Any]],
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
        name: str = "view",
    ) -> None:
        """Initialize the scheduler.

        Args:
            refresh: Coroutine function re-issuing the owner's current query.
            interval: Seconds between ticks.
            name: Label used in log lines.
        """
        if interval <= 0:
            msg = "Polling interval must be positive"
            raise ValueError(msg)
        self._refresh = refresh
        self._interval = interval
        self._name = name
        self._task: asyncio.Task[None] | None = None
        self.ticks = 0
        self.failures = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def state(self) -> PollState:
        return PollState.POLLING if self.is_polling else PollState.IDLE

    @property
    def is_polling(self) -> bool:
        return self._task is not None and not self._task.done()

    def enable(self) -> bool:
        """Start polling; a no-op when already polling.

        Must be called from within a running event loop.

        Returns:
            True if a new polling task was started.
        """
        if self.is_polling:
            return False
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"poll-{self._name}"
        )
        logger.info("Polling enabled: view=%s, interval=%ss", self._name, self._interval)
        return True

    async def disable(self) -> None:
        """Stop polling and wait for the task to finish.

        Once this returns no further refresh is started.
        """
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info(
            "Polling disabled: view=%s, ticks=%d, failures=%d",
            self._name,
            self.ticks,
            self.failures,
        )

    async def close(self) -> None:
        await self.disable()

    async def __aenter__(self) -> PollingScheduler:
        self.enable()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def tick(self) -> bool:
        """Run one refresh, logging (not raising) failures.

        Returns:
            True if the refresh succeeded.
        """
        self.ticks += 1
        try:
            await self._refresh()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failures += 1
            logger.warning(
                "Polling refresh failed, next tick unaffected: view=%s, error=%s",
                self._name,
                e,
            )
            return False
        return True

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._interval
        while True:
            await asyncio.sleep(max(0.0, deadline - loop.time()))
            await self.tick()
            deadline += self._interval
            now = loop.time()
            if deadline <= now:
                skipped = int((now - deadline) // self._interval) + 1
                deadline += skipped * self._interval
                logger.debug("Refresh overran interval: view=%s, skipped=%d", self._name, skipped)
