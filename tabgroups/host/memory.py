"""In-memory browser used by the local server and the test suite.

Mirrors the browser's group lifecycle: a group is created when the first tab
is grouped without a target group, and it disappears as soon as its last tab
leaves. Every async call yields to the event loop once so that concurrent
engine operations interleave the way they do against a real browser.
"""

from __future__ import annotations

import asyncio
import dataclasses
import itertools
from typing import TYPE_CHECKING, Any

from tabgroups.host.base import GroupNotFoundError, HostBusyError, TabNotFoundError
from tabgroups.models.event import EventKind, TabEvent
from tabgroups.models.rule import TabGroupColor
from tabgroups.models.tab import TAB_GROUP_ID_NONE, Tab, TabGroup
from tabgroups.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_logger("host.memory")

DEFAULT_WINDOW_ID = 1


class InMemoryBrowser:
    """A browser with windows, tabs and tab groups held in dictionaries."""

    def __init__(self, window_id: int = DEFAULT_WINDOW_ID) -> None:
        self.focused_window_id = window_id
        self.tabs: dict[int, Tab] = {}
        self.groups: dict[int, TabGroup] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.busy_updates = 0
        """Number of upcoming collapse updates to reject with HostBusyError."""

        self._tab_ids = itertools.count(1)
        self._group_ids = itertools.count(100)
        self._colors = itertools.cycle(list(TabGroupColor))
        self._listeners: list[Callable[[TabEvent], None]] = []

    # Simulation helpers, called synchronously by tests and the dev server

    def open_tab(
        self,
        url: str = "",
        *,
        window_id: int | None = None,
        pinned: bool = False,
        active: bool = False,
    ) -> Tab:
        """Open a tab at the end of a window and emit a created event."""
        window_id = window_id or self.focused_window_id
        tab = Tab(
            id=next(self._tab_ids),
            window_id=window_id,
            url=url,
            pinned=pinned,
            index=sum(1 for t in self.tabs.values() if t.window_id == window_id),
        )
        self.tabs[tab.id] = tab
        if active:
            self._set_active(tab)
        self._emit(TabEvent(EventKind.CREATED, tab.id, window_id=window_id, url=url))
        return dataclasses.replace(tab)

    def navigate(self, tab_id: int, url: str) -> None:
        """Change a tab's URL and emit an updated event."""
        tab = self._tab(tab_id)
        tab.url = url
        self._emit(TabEvent(EventKind.UPDATED, tab_id, window_id=tab.window_id, url=url))

    def set_pinned(self, tab_id: int, pinned: bool) -> None:
        """Pin or unpin a tab; pinning removes it from its group."""
        tab = self._tab(tab_id)
        tab.pinned = pinned
        if pinned:
            self._remove_from_group(tab)
        self._emit(TabEvent(EventKind.UPDATED, tab_id, window_id=tab.window_id, url=tab.url))

    def activate(self, tab_id: int) -> None:
        """Make a tab the active tab of its window."""
        tab = self._tab(tab_id)
        self._set_active(tab)
        self._emit(TabEvent(EventKind.ACTIVATED, tab_id, window_id=tab.window_id))

    def close_tab(self, tab_id: int) -> None:
        """Close a tab and emit a removed event carrying its former group."""
        tab = self._tab(tab_id)
        group_id = tab.group_id
        self._remove_from_group(tab)
        del self.tabs[tab_id]
        self._emit(
            TabEvent(
                EventKind.REMOVED,
                tab_id,
                window_id=tab.window_id,
                group_id=group_id if group_id != TAB_GROUP_ID_NONE else None,
            )
        )

    def group_titles(self, window_id: int | None = None) -> dict[str, list[int]]:
        """Map each group title to the ids of its member tabs."""
        result: dict[str, list[int]] = {}
        for group in self.groups.values():
            if window_id is None or group.window_id == window_id:
                result[group.title] = sorted(
                    t.id for t in self.tabs.values() if t.group_id == group.id
                )
        return result

    # BrowserHost

    def add_listener(self, listener: Callable[[TabEvent], None]) -> None:
        self._listeners.append(listener)

    async def current_window_id(self) -> int:
        await self._suspend("current_window_id")
        return self.focused_window_id

    async def get_tab(self, tab_id: int) -> Tab:
        await self._suspend("get_tab", tab_id)
        return dataclasses.replace(self._tab(tab_id))

    async def query_tabs(
        self,
        *,
        window_id: int | None = None,
        group_id: int | None = None,
        active: bool | None = None,
    ) -> list[Tab]:
        await self._suspend("query_tabs", window_id, group_id, active)
        return [
            dataclasses.replace(tab)
            for tab in sorted(self.tabs.values(), key=lambda t: (t.window_id, t.index))
            if (window_id is None or tab.window_id == window_id)
            and (group_id is None or tab.group_id == group_id)
            and (active is None or tab.active == active)
        ]

    async def group_tabs(self, tab_ids: list[int], group_id: int | None = None) -> int:
        await self._suspend("group_tabs", tuple(tab_ids), group_id)
        if not tab_ids:
            raise ValueError("At least one tab id is required")
        tabs = [self._tab(tab_id) for tab_id in tab_ids]

        if group_id is None:
            group = TabGroup(
                id=next(self._group_ids),
                window_id=tabs[0].window_id,
                color=next(self._colors).value,
            )
            self.groups[group.id] = group
        else:
            group = self._group(group_id)

        for tab in tabs:
            if tab.group_id == group.id:
                continue
            self._remove_from_group(tab)
            tab.group_id = group.id
            tab.pinned = False
        return group.id

    async def ungroup_tabs(self, tab_ids: list[int]) -> None:
        await self._suspend("ungroup_tabs", tuple(tab_ids))
        for tab_id in tab_ids:
            self._remove_from_group(self._tab(tab_id))

    async def query_groups(self, *, window_id: int | None = None) -> list[TabGroup]:
        await self._suspend("query_groups", window_id)
        return [
            dataclasses.replace(group)
            for group in self.groups.values()
            if window_id is None or group.window_id == window_id
        ]

    async def get_group(self, group_id: int) -> TabGroup:
        await self._suspend("get_group", group_id)
        return dataclasses.replace(self._group(group_id))

    async def update_group(
        self,
        group_id: int,
        *,
        title: str | None = None,
        color: str | None = None,
        collapsed: bool | None = None,
    ) -> TabGroup:
        await self._suspend("update_group", group_id, title, color, collapsed)
        group = self._group(group_id)
        if collapsed is not None and self.busy_updates > 0:
            self.busy_updates -= 1
            raise HostBusyError()

        if title is not None:
            group.title = title
        if color is not None:
            if not TabGroupColor.is_valid(color):
                raise ValueError(f"Invalid color: {color}")
            group.color = color
        if collapsed is not None:
            group.collapsed = collapsed
        return dataclasses.replace(group)

    # Internals

    async def _suspend(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        await asyncio.sleep(0)

    def _tab(self, tab_id: int) -> Tab:
        tab = self.tabs.get(tab_id)
        if tab is None:
            raise TabNotFoundError(tab_id)
        return tab

    def _group(self, group_id: int) -> TabGroup:
        group = self.groups.get(group_id)
        if group is None:
            raise GroupNotFoundError(group_id)
        return group

    def _set_active(self, tab: Tab) -> None:
        for other in self.tabs.values():
            if other.window_id == tab.window_id:
                other.active = other.id == tab.id

    def _remove_from_group(self, tab: Tab) -> None:
        group_id = tab.group_id
        if group_id == TAB_GROUP_ID_NONE:
            return
        tab.group_id = TAB_GROUP_ID_NONE
        if not any(t.group_id == group_id for t in self.tabs.values()):
            removed = self.groups.pop(group_id, None)
            if removed is not None:
                logger.debug(
                    "Removed empty group",
                    extra={"group_id": group_id, "group_name": removed.title},
                )

    def _emit(self, event: TabEvent) -> None:
        for listener in self._listeners:
            listener(event)
