"""Background auto-sync after local mutations.

Mutators are synchronous, so they cannot await a sync pass. Instead they
call ``AutoSyncTrigger.request()``, which spawns one asyncio task on the
running loop. Requests that arrive while that task is busy collapse into
a single rerun, so a burst of edits costs at most two passes.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class AutoSyncTrigger:
    def __init__(self, run: Callable[[], Awaitable[object]], enabled: bool = True):
        self._run = run
        self.enabled = enabled
        self._task: asyncio.Task | None = None
        self._rerun = False

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def request(self) -> bool:
        """Ask for a sync pass. Returns True if a new task was started."""
        if not self.enabled:
            return False
        if self.busy:
            self._rerun = True
            return False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, skipping auto-sync")
            return False
        self._rerun = False
        self._task = loop.create_task(self._drain())
        return True

    async def _drain(self) -> None:
        while True:
            self._rerun = False
            try:
                await self._run()
            except Exception:
                logger.exception("Background sync failed")
            if not self._rerun:
                return

    async def wait_idle(self) -> None:
        """Wait for the current task (and its coalesced rerun) to finish."""
        if self._task is not None:
            await self._task
