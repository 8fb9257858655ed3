"""AutoSaveService -- periodic best-effort flushes for open sessions."""

import asyncio
import logging
from typing import Dict

from src.sheets.exceptions import SheetStoreError

from .models import FlushOutcome
from .tracker import SessionTracker

logger = logging.getLogger(__name__)


class AutoSaveService:
    """Flushes each registered session every ``interval`` seconds.

    A failed tick is logged and the loop carries on; the unsaved turns stay
    in the tracker's buffer until some flush succeeds. A loop only ends
    when its session is stopped.
    """

    def __init__(self, interval: float = 300.0):
        self._interval = interval
        self._tasks: Dict[str, asyncio.Task] = {}  # type: ignore[type-arg]

    def is_running(self, session_id: str) -> bool:
        task = self._tasks.get(session_id)
        return task is not None and not task.done()

    async def start(self, tracker: SessionTracker) -> None:
        """Begin flushing ``tracker`` on the interval; no-op if already running."""
        if self.is_running(tracker.session_id):
            return
        self._tasks[tracker.session_id] = asyncio.create_task(
            self._loop(tracker), name=f"autosave-{tracker.session_id}"
        )

    async def stop(self, session_id: str) -> None:
        task = self._tasks.pop(session_id, None)
        if task is not None:
            await _cancel(task)

    async def stop_all(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            await _cancel(task)

    async def _loop(self, tracker: SessionTracker) -> None:
        session_id = tracker.session_id
        while True:
            await asyncio.sleep(self._interval)
            try:
                result = await tracker.flush()
            except SheetStoreError as exc:
                logger.warning("Auto-save failed for session %s: %s", session_id, exc)
            except Exception:
                logger.exception("Unexpected auto-save error for session %s", session_id)
            else:
                if result.outcome is FlushOutcome.SAVED:
                    logger.debug(
                        "Auto-saved %d messages for session %s",
                        result.saved_count,
                        session_id,
                    )


async def _cancel(task: "asyncio.Task[None]") -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
