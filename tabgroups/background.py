"""Wiring of state, services and the event queue around a browser host."""

from __future__ import annotations

from typing import TYPE_CHECKING

from tabgroups.engine.events import EventProcessor
from tabgroups.engine.locks import OperationLockRegistry
from tabgroups.engine.service import TabGroupService
from tabgroups.messages.handler import MessageHandler
from tabgroups.rules.service import RulesService
from tabgroups.state import TabGroupState
from tabgroups.utils.config_loader import load_state, save_state
from tabgroups.utils.logging import get_logger

if TYPE_CHECKING:
    from pathlib import Path

    from tabgroups.host.base import BrowserHost

logger = get_logger("background")


class Background:
    """Owns the shared state and the services built on it.

    Host events are queued on :attr:`events`; UI messages go through
    :attr:`messages`. When a state file is given, state is loaded from it
    and written back after every change.
    """

    def __init__(
        self,
        host: BrowserHost,
        state: TabGroupState | None = None,
        state_file: Path | None = None,
    ) -> None:
        if state is None:
            state = load_state(state_file) if state_file else TabGroupState()
        self.host = host
        self.state = state
        self.state_file = state_file

        self.locks = OperationLockRegistry()
        self.tabs = TabGroupService(host, state, self.locks, on_state_change=self.save_state)
        self.rules = RulesService(state, on_change=self.save_state)
        self.events = EventProcessor(self.tabs)
        self.messages = MessageHandler(self)

        host.add_listener(self.events.submit)

    def save_state(self) -> None:
        if self.state_file is not None:
            save_state(self.state, self.state_file)

    async def start(self) -> None:
        """Reapply remembered colors and group the open tabs."""
        await self.tabs.restore_saved_colors()
        if self.state.settings.auto_grouping_enabled:
            await self.tabs.group_all_tabs()
        logger.info(
            "Background started",
            extra={
                "rule_count": len(self.state.rules),
                "group_by_mode": self.state.settings.group_by_mode.value,
            },
        )
