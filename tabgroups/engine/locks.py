"""Operation locks that keep concurrent grouping work from colliding."""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING

from tabgroups.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = get_logger("engine.locks")

BULK_OPERATION_KEY = "bulk"


def tab_key(tab_id: int) -> str:
    """Lock key for work on a single tab."""
    return f"tab:{tab_id}"


class OperationLockRegistry:
    """Set of in-flight operation keys.

    Acquisition never waits: a caller that finds its key held drops its work,
    trusting the in-flight operation to reach a consistent state. All engine
    work runs on one event loop thread, so a plain set is sufficient.
    """

    def __init__(self) -> None:
        self._held: set[str] = set()

    def try_acquire(self, key: str) -> bool:
        """Take a key if it is free.

        Returns:
            True if the key was acquired, False if it was already held.
        """
        if key in self._held:
            return False
        self._held.add(key)
        return True

    def release(self, key: str) -> None:
        self._held.discard(key)

    def is_held(self, key: str) -> bool:
        return key in self._held

    @property
    def bulk_active(self) -> bool:
        """Whether a bulk pass currently suppresses per-tab events."""
        return BULK_OPERATION_KEY in self._held

    @property
    def held_keys(self) -> frozenset[str]:
        return frozenset(self._held)

    @contextmanager
    def hold(self, key: str) -> Iterator[bool]:
        """Try to acquire a key for the duration of a block.

        Yields whether the key was acquired; an acquired key is released on
        every exit path, including exceptions and cancellation.

        Example:
            with locks.hold(tab_key(tab_id)) as acquired:
                if not acquired:
                    return False
                ...
        """
        acquired = self.try_acquire(key)
        if not acquired:
            logger.debug("Operation already in progress", extra={"lock_key": key})
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)
