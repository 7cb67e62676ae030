"""Tab lifecycle events delivered by the browser host."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class EventKind(str, Enum):
    """Kinds of tab lifecycle event."""

    CREATED = "created"
    UPDATED = "updated"
    MOVED = "moved"
    REMOVED = "removed"
    ACTIVATED = "activated"


@dataclass(frozen=True)
class TabEvent:
    """One tab lifecycle event.

    ``group_id`` is only set for removals, where it names the group the tab
    was in when it closed.
    """

    kind: EventKind
    tab_id: int
    window_id: int | None = None
    url: str | None = None
    group_id: int | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> TabEvent:
        """Create an event from a message payload.

        Raises:
            ValueError: If the kind is unknown or the tab id is missing.
        """
        try:
            kind = EventKind(payload.get("kind"))
        except ValueError as e:
            raise ValueError(f"Unknown event kind: {payload.get('kind')}") from e

        tab_id = payload.get("tabId")
        if isinstance(tab_id, bool) or not isinstance(tab_id, int):
            raise ValueError("Event tabId must be an integer")

        return cls(
            kind=kind,
            tab_id=tab_id,
            window_id=payload.get("windowId"),
            url=payload.get("url"),
            group_id=payload.get("groupId"),
        )
