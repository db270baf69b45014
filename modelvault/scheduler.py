"""Debounced execution of an async callback.

Replaces wall-clock ``setTimeout`` style debouncing with an object tests
can drive directly::

    scheduler = DebouncedScheduler(registry.refresh_stored_models)
    scheduler.schedule(0.3)   # collapses with any pending run
    await scheduler.flush_now()  # run immediately if something is pending
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class DebouncedScheduler:
    """Runs *callback* once after the last ``schedule()`` call settles.

    Must be used from within a running event loop.
    """

    def __init__(self, callback: Callable[[], Awaitable[object]]) -> None:
        self._callback = callback
        self._timer: Optional[asyncio.Task] = None
        self._runs = 0

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def runs(self) -> int:
        """Number of completed callback runs."""
        return self._runs

    def schedule(self, delay: float) -> None:
        """(Re)arm the timer. A pending run is postponed, not duplicated."""
        self.cancel()
        self._timer = asyncio.get_event_loop().create_task(self._fire_later(delay))

    def cancel(self) -> bool:
        """Drop the pending run, if any. Returns True if one was cancelled."""
        timer, self._timer = self._timer, None
        if timer is None or timer.done():
            return False
        timer.cancel()
        return True

    async def flush_now(self) -> bool:
        """Run the pending callback immediately. Returns False if nothing was pending."""
        if not self.cancel():
            return False
        await self._run()
        return True

    async def _fire_later(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # Detach before running so a schedule() from inside the callback re-arms
        self._timer = None
        await self._run()

    async def _run(self) -> None:
        try:
            await self._callback()
        except Exception:
            logger.exception("Debounced callback failed")
        finally:
            self._runs += 1
