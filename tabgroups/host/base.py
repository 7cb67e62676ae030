"""Interface to the browser's tab and tab group APIs."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable

    from tabgroups.models.event import TabEvent
    from tabgroups.models.tab import Tab, TabGroup


class HostError(Exception):
    """Base class for errors reported by the browser host."""

    pass


class TabNotFoundError(HostError):
    """The tab no longer exists."""

    def __init__(self, tab_id: int) -> None:
        self.tab_id = tab_id
        super().__init__(f"No tab with id: {tab_id}")


class GroupNotFoundError(HostError):
    """The tab group no longer exists."""

    def __init__(self, group_id: int) -> None:
        self.group_id = group_id
        super().__init__(f"No group with id: {group_id}")


class HostBusyError(HostError):
    """The browser refused an edit during a tab transition; retrying later succeeds."""

    def __init__(self, message: str = "Tabs cannot be edited right now") -> None:
        super().__init__(message)


# Host errors caused by a tab or group vanishing between a query and an action
VANISHED_ERRORS: tuple[type[HostError], ...] = (TabNotFoundError, GroupNotFoundError)


class BrowserHost(Protocol):
    """Asynchronous browser tab and tab group operations.

    Every call is a suspension point; the live state may change between any
    two calls.
    """

    async def current_window_id(self) -> int: ...

    async def get_tab(self, tab_id: int) -> Tab:
        """Raises TabNotFoundError if the tab does not exist."""
        ...

    async def query_tabs(
        self,
        *,
        window_id: int | None = None,
        group_id: int | None = None,
        active: bool | None = None,
    ) -> list[Tab]: ...

    async def group_tabs(self, tab_ids: list[int], group_id: int | None = None) -> int:
        """Move tabs into a group, creating a new group when ``group_id`` is None.

        Returns:
            The id of the group the tabs are now in.
        """
        ...

    async def ungroup_tabs(self, tab_ids: list[int]) -> None: ...

    async def query_groups(self, *, window_id: int | None = None) -> list[TabGroup]: ...

    async def get_group(self, group_id: int) -> TabGroup:
        """Raises GroupNotFoundError if the group does not exist."""
        ...

    async def update_group(
        self,
        group_id: int,
        *,
        title: str | None = None,
        color: str | None = None,
        collapsed: bool | None = None,
    ) -> TabGroup: ...

    def add_listener(self, listener: Callable[[TabEvent], None]) -> None:
        """Register a callback for tab lifecycle events."""
        ...
