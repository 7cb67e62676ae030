"""Group assignment: put each tab into the group its URL classifies to.

The browser's live group list is the only source of truth. Groups are found
by title, re-queried before each decision, and every host call is a point
where other work may have changed the browser. Tabs or groups that vanish
in between are expected races: they are logged and the tab is left for the
next event to reconcile.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from tabgroups.engine.locks import BULK_OPERATION_KEY, OperationLockRegistry, tab_key
from tabgroups.host.base import VANISHED_ERRORS, HostBusyError, HostError
from tabgroups.matching.domain import SYSTEM_GROUP_NAME, is_system_url
from tabgroups.models.classification import ClassificationResult, ClassificationSource
from tabgroups.models.rule import TabGroupColor
from tabgroups.models.tab import TAB_GROUP_ID_NONE, Tab, TabGroup
from tabgroups.rules.resolver import ResolverConfig, minimum_tabs_for_title, resolve
from tabgroups.utils.logging import get_logger
from tabgroups.utils.retry import RetryConfig, RetryError, retry_with_backoff_async

if TYPE_CHECKING:
    from collections.abc import Callable

    from tabgroups.host.base import BrowserHost
    from tabgroups.state import TabGroupState

logger = get_logger("engine.service")


class TabGroupService:
    """Assigns tabs to groups and keeps groups above their minimum size."""

    def __init__(
        self,
        host: BrowserHost,
        state: TabGroupState,
        locks: OperationLockRegistry | None = None,
        retry_config: RetryConfig | None = None,
        on_state_change: Callable[[], None] | None = None,
    ) -> None:
        self.host = host
        self.state = state
        self.locks = locks or OperationLockRegistry()
        self.retry_config = retry_config or RetryConfig()
        self._on_state_change = on_state_change

    # Single tab

    async def handle_tab_event(self, tab_id: int, force: bool = False) -> bool:
        """Move a tab into the group its URL classifies to.

        Dropped while a bulk pass runs or while the same tab is already being
        processed.

        Args:
            tab_id: Tab to process.
            force: Manual grouping; ignores the auto-grouping and system page settings.

        Returns:
            True if the tab's group membership changed.
        """
        if not force and not self.state.settings.auto_grouping_enabled:
            return False

        if self.locks.bulk_active:
            logger.debug("Bulk operation in progress, skipping tab", extra={"tab_id": tab_id})
            return False

        with self.locks.hold(tab_key(tab_id)) as acquired:
            if not acquired:
                return False
            return await self._process_tab(tab_id, force)

    def classify(
        self, tab: Tab, config: ResolverConfig | None = None, force: bool = False
    ) -> ClassificationResult | None:
        """Classify a tab, or return None if it must stay ungrouped.

        Pinned tabs, tabs without a URL, system pages while system grouping is
        off (unless forced), and domain classifications in rules-only mode are
        not grouped.
        """
        if tab.pinned or not tab.url:
            return None

        settings = self.state.settings
        if not force and not settings.group_new_tabs and is_system_url(tab.url):
            return None

        classification = resolve(tab.url, config or self.state.resolver_config())
        if classification is None:
            return None
        if classification.source == ClassificationSource.DOMAIN and settings.rules_only:
            return None
        return classification

    async def _process_tab(self, tab_id: int, force: bool = False) -> bool:
        try:
            tab = await self.host.get_tab(tab_id)
            config = self.state.resolver_config()
            classification = self.classify(tab, config, force)
            if classification is None:
                logger.debug("Tab not eligible for grouping", extra={"tab_id": tab_id})
                return False
            return await self._assign(tab, classification, config, force)
        except VANISHED_ERRORS as e:
            logger.debug(
                "Tab or group vanished during processing",
                extra={"tab_id": tab_id, "error": str(e)},
            )
            return False
        except HostError as e:
            logger.warning(
                "Host error while processing tab",
                extra={"tab_id": tab_id, "error": str(e)},
            )
            return False
        except Exception:
            logger.exception("Unexpected error processing tab", extra={"tab_id": tab_id})
            return False

    async def _assign(
        self,
        tab: Tab,
        classification: ClassificationResult,
        config: ResolverConfig,
        force: bool = False,
    ) -> bool:
        name = classification.group_name
        target = await self._find_group(tab.window_id, name)

        if target is None:
            count = await self._count_matching_tabs(tab.window_id, name, config, force)
            if count < classification.minimum_tabs:
                logger.debug(
                    "Not enough tabs to create group",
                    extra={
                        "tab_id": tab.id,
                        "group_name": name,
                        "tab_count": count,
                        "minimum_tabs": classification.minimum_tabs,
                    },
                )
                return await self._leave_ungrouped(tab)

            # Counting suspended; the group may exist by now
            target = await self._find_group(tab.window_id, name)

        if target is None:
            return await self._create_group(tab, classification, config, force)

        if tab.group_id == target.id:
            logger.debug(
                "Tab already in correct group",
                extra={"tab_id": tab.id, "group_id": target.id, "group_name": name},
            )
            return False

        return await self._move_to_group(tab, target, classification)

    async def _move_to_group(
        self,
        tab: Tab,
        target: TabGroup,
        classification: ClassificationResult,
    ) -> bool:
        source_group_id = tab.group_id
        await self.host.group_tabs([tab.id], group_id=target.id)
        logger.info(
            "Moved tab to existing group",
            extra={
                "tab_id": tab.id,
                "group_id": target.id,
                "group_name": target.title,
                "window_id": tab.window_id,
                "source": classification.source.value,
            },
        )

        if classification.has_rule_color and target.color != classification.color.value:
            await self._update_group(target.id, color=classification.color.value)
            self._remember_color(target.title, classification.color.value)

        await self._cleanup_source_group(source_group_id, target.id)
        return True

    async def _create_group(
        self,
        tab: Tab,
        classification: ClassificationResult,
        config: ResolverConfig,
        force: bool = False,
    ) -> bool:
        name = classification.group_name
        source_group_id = tab.group_id

        group_id = await self.host.group_tabs([tab.id])
        color = classification.color or self.state.saved_color(name)
        group = await self.host.update_group(
            group_id,
            title=name,
            color=color.value if color else None,
        )
        self._remember_color(name, group.color)

        logger.info(
            "Created group",
            extra={
                "tab_id": tab.id,
                "group_id": group_id,
                "group_name": name,
                "window_id": tab.window_id,
                "source": classification.source.value,
                "color": group.color,
            },
        )

        await self._cleanup_source_group(source_group_id, group_id)
        group_id = await self._merge_duplicate_groups(tab.window_id, name, group_id)
        await self._sweep_ungrouped_tabs(tab.window_id, name, group_id, config, force)
        return True

    async def _leave_ungrouped(self, tab: Tab) -> bool:
        if not tab.is_grouped:
            return False
        await self.host.ungroup_tabs([tab.id])
        logger.info(
            "Removed tab from group below minimum size",
            extra={"tab_id": tab.id, "group_id": tab.group_id},
        )
        await self._cleanup_source_group(tab.group_id, None)
        return True

    async def _cleanup_source_group(
        self, source_group_id: int, target_group_id: int | None
    ) -> None:
        if source_group_id == TAB_GROUP_ID_NONE or source_group_id == target_group_id:
            return
        await self.check_group_threshold(source_group_id)

    async def _merge_duplicate_groups(self, window_id: int, name: str, group_id: int) -> int:
        """Fold same-titled groups created by concurrent operations into the oldest one."""
        groups = await self.host.query_groups(window_id=window_id)
        duplicates = [g for g in groups if g.title == name]
        if len(duplicates) < 2:
            return group_id

        keeper = min(duplicates, key=lambda g: g.id)
        for group in duplicates:
            if group.id == keeper.id:
                continue
            tabs = await self.host.query_tabs(group_id=group.id)
            if tabs:
                await self.host.group_tabs([t.id for t in tabs], group_id=keeper.id)
            logger.info(
                "Merged duplicate group",
                extra={"group_id": group.id, "group_name": name, "into_group_id": keeper.id},
            )
        return keeper.id

    async def _sweep_ungrouped_tabs(
        self,
        window_id: int,
        name: str,
        group_id: int,
        config: ResolverConfig,
        force: bool = False,
    ) -> None:
        """Move ungrouped tabs that classify to a new group into it."""
        tabs = await self.host.query_tabs(window_id=window_id)
        tab_ids = []
        for other in tabs:
            if other.is_grouped or self.locks.is_held(tab_key(other.id)):
                continue
            classification = self.classify(other, config, force)
            if classification is not None and classification.group_name == name:
                tab_ids.append(other.id)

        if not tab_ids:
            return

        try:
            await self.host.group_tabs(tab_ids, group_id=group_id)
        except VANISHED_ERRORS as e:
            logger.debug("Sweep target vanished", extra={"group_id": group_id, "error": str(e)})
            return
        logger.info(
            "Added matching ungrouped tabs to group",
            extra={"group_id": group_id, "group_name": name, "tab_count": len(tab_ids)},
        )

    async def _count_matching_tabs(
        self, window_id: int, name: str, config: ResolverConfig, force: bool = False
    ) -> int:
        tabs = await self.host.query_tabs(window_id=window_id)
        count = 0
        for tab in tabs:
            classification = self.classify(tab, config, force)
            if classification is not None and classification.group_name == name:
                count += 1
        return count

    async def _find_group(self, window_id: int, title: str) -> TabGroup | None:
        groups = await self.host.query_groups(window_id=window_id)
        matches = [group for group in groups if group.title == title]
        return min(matches, key=lambda g: g.id) if matches else None

    # Thresholds

    async def check_group_threshold(self, group_id: int) -> bool:
        """Disband a group that has fewer tabs than its minimum.

        Returns:
            True if the group was disbanded.
        """
        try:
            group = await self.host.get_group(group_id)
            minimum = minimum_tabs_for_title(group.title, self.state.resolver_config())
            if minimum <= 1:
                return False

            tabs = await self.host.query_tabs(group_id=group_id)
            count = sum(1 for tab in tabs if not tab.pinned)
            if count >= minimum:
                return False

            if tabs:
                await self.host.ungroup_tabs([tab.id for tab in tabs])
        except VANISHED_ERRORS as e:
            logger.debug(
                "Group vanished during threshold check",
                extra={"group_id": group_id, "error": str(e)},
            )
            return False

        logger.info(
            "Disbanded group below minimum size",
            extra={
                "group_id": group_id,
                "group_name": group.title,
                "tab_count": count,
                "minimum_tabs": minimum,
            },
        )
        return True

    async def check_all_groups_threshold(self, window_id: int | None = None) -> int:
        """Check every group of a window (the current one by default).

        Returns:
            Number of groups disbanded.
        """
        if window_id is None:
            window_id = await self.host.current_window_id()

        disbanded = 0
        for group in await self.host.query_groups(window_id=window_id):
            if await self.check_group_threshold(group.id):
                disbanded += 1
        return disbanded

    # Bulk operations

    async def group_all_tabs(self, force: bool = False) -> bool:
        """Group every eligible tab of the current window.

        Per-tab events are suppressed for the duration of the pass. A failure
        on one tab is logged and the pass continues.

        Args:
            force: Manual grouping; ignores the auto-grouping and system page settings.

        Returns:
            True if the pass ran, False if it was skipped.
        """
        if not force and not self.state.settings.auto_grouping_enabled:
            return False

        with self.locks.hold(BULK_OPERATION_KEY) as acquired:
            if not acquired:
                logger.info("Bulk grouping already in progress")
                return False

            window_id = await self.host.current_window_id()
            tabs = await self.host.query_tabs(window_id=window_id)
            logger.info(
                "Starting bulk grouping",
                extra={"window_id": window_id, "tab_count": len(tabs)},
            )

            changed = 0
            for tab in tabs:
                with self.locks.hold(tab_key(tab.id)) as tab_acquired:
                    if not tab_acquired:
                        continue
                    if await self._process_tab(tab.id, force):
                        changed += 1

            disbanded = await self.check_all_groups_threshold(window_id)

        logger.info(
            "Bulk grouping completed",
            extra={"window_id": window_id, "changed": changed, "disbanded": disbanded},
        )
        return True

    async def ungroup_all_tabs(self) -> bool:
        """Remove every tab of the current window from its group.

        Returns:
            True if the pass ran, False if another bulk pass was in progress.
        """
        with self.locks.hold(BULK_OPERATION_KEY) as acquired:
            if not acquired:
                return False

            window_id = await self.host.current_window_id()
            tabs = await self.host.query_tabs(window_id=window_id)
            tab_ids = [tab.id for tab in tabs if tab.is_grouped]
            if tab_ids:
                try:
                    await self.host.ungroup_tabs(tab_ids)
                except VANISHED_ERRORS as e:
                    logger.debug("Tab vanished while ungrouping", extra={"error": str(e)})

        logger.info("Ungrouped all tabs", extra={"window_id": window_id, "tab_count": len(tab_ids)})
        return True

    async def ungroup_system_tabs(self) -> bool:
        """Disband the System group of the current window.

        Returns:
            True if a System group was disbanded.
        """
        window_id = await self.host.current_window_id()
        group = await self._find_group(window_id, SYSTEM_GROUP_NAME)
        if group is None:
            return False

        tabs = await self.host.query_tabs(group_id=group.id)
        if tabs:
            try:
                await self.host.ungroup_tabs([tab.id for tab in tabs])
            except VANISHED_ERRORS as e:
                logger.debug("Tab vanished while ungrouping", extra={"error": str(e)})
                return False

        logger.info("Ungrouped System tabs", extra={"group_id": group.id, "tab_count": len(tabs)})
        return True

    # Colors

    async def restore_saved_colors(self) -> int:
        """Reapply remembered colors to groups whose color drifted.

        Returns:
            Number of groups recolored.
        """
        restored = 0
        for group in await self.host.query_groups():
            saved = self.state.saved_color(group.title)
            if saved is None or saved.value == group.color:
                continue
            if await self._update_group(group.id, color=saved.value):
                restored += 1

        logger.info("Restored group colors", extra={"restored": restored})
        return restored

    async def generate_new_colors(self) -> int:
        """Give every group not owned by a rule a new random color.

        Returns:
            Number of groups recolored.
        """
        rule_names = {rule.name for rule in self.state.rules.values()}
        recolored = 0
        for group in await self.host.query_groups():
            if group.title in rule_names:
                continue
            color = TabGroupColor.random()
            if await self._update_group(group.id, color=color.value):
                self._remember_color(group.title, color.value)
                recolored += 1

        logger.info("Generated new group colors", extra={"recolored": recolored})
        return recolored

    def _remember_color(self, title: str, color: str | None) -> None:
        if not title or color is None or self.state.saved_color(title) == color:
            return
        self.state.remember_color(title, color)
        if self._on_state_change is not None:
            self._on_state_change()

    # Collapse

    async def collapse_all_groups(self) -> int:
        """Collapse every group of the current window except the active tab's.

        Returns:
            Number of groups collapsed.
        """
        window_id = await self.host.current_window_id()
        active_group_id = await self._active_group_id(window_id)
        collapsed = 0
        for group in await self.host.query_groups(window_id=window_id):
            if group.id == active_group_id or group.collapsed:
                continue
            if await self._update_group(group.id, collapsed=True):
                collapsed += 1
        return collapsed

    async def expand_all_groups(self) -> int:
        """Expand every group of the current window.

        Returns:
            Number of groups expanded.
        """
        window_id = await self.host.current_window_id()
        expanded = 0
        for group in await self.host.query_groups(window_id=window_id):
            if group.collapsed and await self._update_group(group.id, collapsed=False):
                expanded += 1
        return expanded

    async def toggle_all_groups_collapse(self) -> bool:
        """Expand all groups if the others are collapsed, otherwise collapse them.

        The active tab's group is left out of the decision since collapsing
        never folds it.

        Returns:
            The new collapsed state.
        """
        window_id = await self.host.current_window_id()
        if not await self.host.query_groups(window_id=window_id):
            return False

        if await self.groups_collapse_state():
            await self.expand_all_groups()
            return False
        await self.collapse_all_groups()
        return True

    async def groups_collapse_state(self) -> bool:
        """Whether every group other than the active tab's is collapsed."""
        window_id = await self.host.current_window_id()
        active_group_id = await self._active_group_id(window_id)
        others = [
            group
            for group in await self.host.query_groups(window_id=window_id)
            if group.id != active_group_id
        ]
        return bool(others) and all(group.collapsed for group in others)

    async def collapse_other_groups(self, active_tab_id: int) -> None:
        """Collapse all groups except the one holding the window's active tab.

        The active tab is queried fresh because the activated tab's own record
        can report a stale group right after activation.
        """
        try:
            target = await self.host.get_tab(active_tab_id)
        except VANISHED_ERRORS:
            return

        active_tabs = await self.host.query_tabs(window_id=target.window_id, active=True)
        if not active_tabs:
            logger.warning("No active tab found in window", extra={"window_id": target.window_id})
            return

        active_group_id = active_tabs[0].group_id
        for group in await self.host.query_groups(window_id=target.window_id):
            if group.id == active_group_id:
                if group.collapsed:
                    await self._update_group(group.id, collapsed=False)
            elif not group.collapsed:
                await self._update_group(group.id, collapsed=True)

    async def _active_group_id(self, window_id: int) -> int | None:
        active_tabs = await self.host.query_tabs(window_id=window_id, active=True)
        if not active_tabs or not active_tabs[0].is_grouped:
            return None
        return active_tabs[0].group_id

    async def _update_group(
        self,
        group_id: int,
        *,
        color: str | None = None,
        collapsed: bool | None = None,
    ) -> bool:
        """Update a group, retrying while the browser reports it is busy.

        Returns:
            True if the update was applied.
        """

        async def update() -> TabGroup:
            return await self.host.update_group(group_id, color=color, collapsed=collapsed)

        try:
            await retry_with_backoff_async(update, self.retry_config, retry_on=(HostBusyError,))
        except RetryError as e:
            logger.warning(
                "Failed to update group after retries",
                extra={"group_id": group_id, "attempts": e.attempts},
            )
            return False
        except VANISHED_ERRORS as e:
            logger.debug(
                "Group vanished before update",
                extra={"group_id": group_id, "error": str(e)},
            )
            return False
        return True
