"""Browser tab and tab group models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Group id the browser reports for tabs that are not in any group
TAB_GROUP_ID_NONE = -1


@dataclass
class Tab:
    """A browser tab as reported by the host."""

    id: int
    window_id: int
    url: str = ""
    pinned: bool = False
    group_id: int = TAB_GROUP_ID_NONE
    active: bool = False
    index: int = 0

    @property
    def is_grouped(self) -> bool:
        """Check if the tab is currently a member of a group."""
        return self.group_id != TAB_GROUP_ID_NONE

    @classmethod
    def from_host_payload(cls, payload: dict[str, Any]) -> Tab:
        """Create a Tab from a host API tab object.

        Args:
            payload: Tab object using the browser's camelCase keys.

        Returns:
            Tab instance.
        """
        return cls(
            id=payload["id"],
            window_id=payload["windowId"],
            url=payload.get("url") or "",
            pinned=bool(payload.get("pinned", False)),
            group_id=payload.get("groupId", TAB_GROUP_ID_NONE),
            active=bool(payload.get("active", False)),
            index=payload.get("index", 0),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the browser's tab shape."""
        return {
            "id": self.id,
            "windowId": self.window_id,
            "url": self.url,
            "pinned": self.pinned,
            "groupId": self.group_id,
            "active": self.active,
            "index": self.index,
        }


@dataclass
class TabGroup:
    """A live browser tab group.

    Owned by the browser. The engine reads it fresh before every decision and
    only changes it through explicit host update calls.
    """

    id: int
    window_id: int
    title: str = ""
    color: str | None = None
    collapsed: bool = False

    @classmethod
    def from_host_payload(cls, payload: dict[str, Any]) -> TabGroup:
        """Create a TabGroup from a host API group object."""
        return cls(
            id=payload["id"],
            window_id=payload["windowId"],
            title=payload.get("title") or "",
            color=payload.get("color"),
            collapsed=bool(payload.get("collapsed", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the browser's tab group shape."""
        return {
            "id": self.id,
            "windowId": self.window_id,
            "title": self.title,
            "color": self.color,
            "collapsed": self.collapsed,
        }
