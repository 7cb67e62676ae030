"""Single-consumer queue of tab lifecycle events."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from tabgroups.models.event import EventKind, TabEvent
from tabgroups.utils.logging import get_logger

if TYPE_CHECKING:
    from tabgroups.engine.service import TabGroupService

logger = get_logger("engine.events")


class EventProcessor:
    """Queues host events and processes them one at a time.

    ``submit`` is safe to register as a host listener. Either run the
    consumer loop with :meth:`run`, or process what is queued with
    :meth:`drain`; never both at once.
    """

    def __init__(self, service: TabGroupService) -> None:
        self.service = service
        self._queue: asyncio.Queue[TabEvent] = asyncio.Queue()
        self._collapse_tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def submit(self, event: TabEvent) -> None:
        self._queue.put_nowait(event)

    async def run(self) -> None:
        """Consume events until cancelled."""
        while True:
            event = await self._queue.get()
            try:
                await self.process(event)
            finally:
                self._queue.task_done()

    async def drain(self) -> int:
        """Process every queued event, including events queued meanwhile.

        Returns:
            Number of events processed.
        """
        processed = 0
        while not self._queue.empty():
            event = self._queue.get_nowait()
            try:
                await self.process(event)
            finally:
                self._queue.task_done()
            processed += 1
        return processed

    async def wait_for_collapses(self) -> None:
        """Wait for delayed auto-collapse work scheduled by activation events."""
        if self._collapse_tasks:
            await asyncio.gather(*self._collapse_tasks)

    async def process(self, event: TabEvent) -> bool:
        """Apply one event.

        Unexpected errors are logged and swallowed so the consumer survives.

        Returns:
            True if the event changed tab group membership.
        """
        logger.debug(
            "Processing tab event",
            extra={"event": event.kind.value, "tab_id": event.tab_id, "window_id": event.window_id},
        )
        try:
            match event.kind:
                case EventKind.CREATED | EventKind.UPDATED | EventKind.MOVED:
                    return await self.service.handle_tab_event(event.tab_id)
                case EventKind.REMOVED:
                    return await self._handle_removed(event)
                case EventKind.ACTIVATED:
                    self._schedule_collapse(event.tab_id)
                    return False
        except Exception:
            logger.exception(
                "Unexpected error processing tab event",
                extra={"event": event.kind.value, "tab_id": event.tab_id},
            )
        return False

    async def _handle_removed(self, event: TabEvent) -> bool:
        if self.service.locks.bulk_active:
            return False
        source_disbanded = False
        if event.group_id is not None:
            source_disbanded = await self.service.check_group_threshold(event.group_id)
        disbanded = await self.service.check_all_groups_threshold(event.window_id)
        return source_disbanded or disbanded > 0

    def _schedule_collapse(self, tab_id: int) -> None:
        settings = self.service.state.settings
        if not settings.auto_collapse_enabled:
            return

        delay = settings.auto_collapse_delay_ms / 1000

        async def collapse() -> None:
            if delay:
                await asyncio.sleep(delay)
            try:
                await self.service.collapse_other_groups(tab_id)
            except Exception:
                logger.exception("Auto-collapse failed", extra={"tab_id": tab_id})

        task = asyncio.create_task(collapse())
        self._collapse_tasks.add(task)
        task.add_done_callback(self._collapse_tasks.discard)
