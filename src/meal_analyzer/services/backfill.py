"""Fire-and-forget writes into the nutrition cache."""

import asyncio
import logging

from meal_analyzer.domain.nutrition import NutritionCacheEntry
from meal_analyzer.services.cache import NutritionCacheStore

_logger = logging.getLogger(__name__)


class BackfillWorker:
    """Runs cache writes as detached tasks.

    Callers never await the write. The worker keeps a strong reference to each
    task until it finishes so the event loop does not drop it, and failures are
    logged and discarded.
    """

    def __init__(self, store: NutritionCacheStore) -> None:
        self.store = store
        self._tasks: set[asyncio.Task[None]] = set()

    def submit(self, entry: NutritionCacheEntry) -> None:
        """Schedule ``entry`` to be appended to the store."""
        try:
            task = asyncio.get_running_loop().create_task(self._write(entry))
        except RuntimeError:
            _logger.warning("No running loop, dropping backfill for %s", entry.food_name)
            return
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every scheduled write has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _write(self, entry: NutritionCacheEntry) -> None:
        try:
            await self.store.append(entry)
        except Exception:
            _logger.exception("Nutrition cache backfill failed for %s", entry.food_name)
            return
        _logger.debug(
            "Backfilled nutrition cache: food=%s source=%s",
            entry.food_name,
            entry.source.value,
        )
