"""Unit tests for the group assignment engine."""

from unittest.mock import MagicMock

import pytest

from tabgroups.engine.locks import BULK_OPERATION_KEY, tab_key
from tabgroups.engine.service import TabGroupService
from tabgroups.host.memory import InMemoryBrowser
from tabgroups.models.config import GroupByMode, Settings
from tabgroups.models.rule import Rule, TabGroupColor
from tabgroups.models.tab import Tab
from tabgroups.state import TabGroupState
from tabgroups.utils.retry import RetryConfig


def _group_color(browser: InMemoryBrowser, title: str) -> str | None:
    return next(g.color for g in browser.groups.values() if g.title == title)


def _group_id(browser: InMemoryBrowser, title: str) -> int:
    return next(g.id for g in browser.groups.values() if g.title == title)


def _host_writes(browser: InMemoryBrowser) -> list[str]:
    return [
        name for name, _ in browser.calls if name in ("group_tabs", "ungroup_tabs", "update_group")
    ]


class TestClassify:
    """Tests for TabGroupService.classify."""

    def test_pinned_tab(self, service: TabGroupService) -> None:
        """Test that pinned tabs are never grouped."""
        tab = Tab(id=1, window_id=1, url="https://github.com", pinned=True)

        assert service.classify(tab) is None

    def test_tab_without_url(self, service: TabGroupService) -> None:
        """Test that tabs without a URL are left alone."""
        assert service.classify(Tab(id=1, window_id=1)) is None

    def test_system_pages_follow_setting(
        self, service: TabGroupService, state: TabGroupState
    ) -> None:
        """Test that system pages are grouped only while system grouping is on."""
        tab = Tab(id=1, window_id=1, url="chrome://settings")

        classification = service.classify(tab)
        assert classification is not None
        assert classification.group_name == "System"

        state.settings = Settings(group_new_tabs=False)
        assert service.classify(tab) is None
        forced = service.classify(tab, force=True)
        assert forced is not None
        assert forced.group_name == "System"

    def test_rules_only_mode(
        self, service: TabGroupService, state: TabGroupState, github_rule: Rule
    ) -> None:
        """Test that rules-only mode ignores domain classifications."""
        state.settings = Settings(group_by_mode=GroupByMode.RULES_ONLY)
        state.add_rule(github_rule)

        assert service.classify(Tab(id=1, window_id=1, url="https://example.com")) is None
        assert service.classify(Tab(id=2, window_id=1, url="chrome://newtab/")) is None
        result = service.classify(Tab(id=3, window_id=1, url="https://github.com"))
        assert result is not None
        assert result.group_name == "Dev"


class TestHandleTabEvent:
    """Tests for single tab assignment."""

    @pytest.mark.asyncio
    async def test_creates_domain_group(
        self, service: TabGroupService, browser: InMemoryBrowser, state: TabGroupState
    ) -> None:
        """Test that the first tab of a domain creates a titled group."""
        tab = browser.open_tab("https://www.github.com/owner/repo")

        changed = await service.handle_tab_event(tab.id)

        assert changed is True
        assert browser.group_titles() == {"Github": [tab.id]}
        # Browser picked the color; it is remembered for the title
        assert state.saved_color("Github") == TabGroupColor(_group_color(browser, "Github"))

    @pytest.mark.asyncio
    async def test_joins_existing_group(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that later tabs move into the group with the same title."""
        first = browser.open_tab("https://github.com/a")
        second = browser.open_tab("https://gist.github.com/b")

        await service.handle_tab_event(first.id)
        await service.handle_tab_event(second.id)

        assert browser.group_titles() == {"Github": [first.id, second.id]}

    @pytest.mark.asyncio
    async def test_second_call_is_a_noop(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that a tab already in its group causes no host writes."""
        tab = browser.open_tab("https://github.com")
        await service.handle_tab_event(tab.id)
        browser.calls.clear()

        changed = await service.handle_tab_event(tab.id)

        assert changed is False
        assert _host_writes(browser) == []

    @pytest.mark.asyncio
    async def test_saved_color_for_new_group(
        self, service: TabGroupService, browser: InMemoryBrowser, state: TabGroupState
    ) -> None:
        """Test that a remembered color is applied to a recreated group."""
        state.remember_color("Github", "cyan")
        tab = browser.open_tab("https://github.com")

        await service.handle_tab_event(tab.id)

        assert _group_color(browser, "Github") == "cyan"

    @pytest.mark.asyncio
    async def test_rule_color_wins_over_group_color(
        self,
        service: TabGroupService,
        browser: InMemoryBrowser,
        state: TabGroupState,
        github_rule: Rule,
    ) -> None:
        """Test that moving a tab into a rule group restores the rule color."""
        state.add_rule(github_rule)
        first = browser.open_tab("https://github.com")
        await service.handle_tab_event(first.id)
        assert _group_color(browser, "Dev") == "purple"

        await browser.update_group(_group_id(browser, "Dev"), color="red")
        second = browser.open_tab("https://api.github.com")
        await service.handle_tab_event(second.id)

        assert _group_color(browser, "Dev") == "purple"
        assert state.saved_color("Dev") == TabGroupColor.PURPLE

    @pytest.mark.asyncio
    async def test_system_group_is_grey(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that browser pages go to the grey System group."""
        browser.open_tab("https://example.com")
        await service.handle_tab_event(1)
        tab = browser.open_tab("chrome://extensions")

        await service.handle_tab_event(tab.id)

        assert browser.group_titles()["System"] == [tab.id]
        assert _group_color(browser, "System") == "grey"

    @pytest.mark.asyncio
    async def test_pinned_tab_is_not_grouped(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that pinned tabs stay out of groups."""
        tab = browser.open_tab("https://github.com", pinned=True)

        assert await service.handle_tab_event(tab.id) is False
        assert browser.groups == {}

    @pytest.mark.asyncio
    async def test_auto_grouping_disabled(
        self, service: TabGroupService, browser: InMemoryBrowser, state: TabGroupState
    ) -> None:
        """Test that events are ignored unless grouping is forced."""
        state.settings = Settings(auto_grouping_enabled=False)
        tab = browser.open_tab("https://github.com")

        assert await service.handle_tab_event(tab.id) is False
        assert browser.groups == {}
        assert await service.handle_tab_event(tab.id, force=True) is True

    @pytest.mark.asyncio
    async def test_force_groups_system_pages_when_disabled(
        self, service: TabGroupService, browser: InMemoryBrowser, state: TabGroupState
    ) -> None:
        """Test that manual grouping overrides the system grouping setting."""
        state.settings = Settings(group_new_tabs=False)
        first = browser.open_tab("chrome://settings")
        second = browser.open_tab("chrome://extensions")

        assert await service.handle_tab_event(first.id) is False
        assert browser.groups == {}

        assert await service.handle_tab_event(first.id, force=True) is True
        assert browser.group_titles() == {"System": [first.id, second.id]}

    @pytest.mark.asyncio
    async def test_vanished_tab(self, service: TabGroupService) -> None:
        """Test that a tab closed before processing is ignored."""
        assert await service.handle_tab_event(999) is False

    @pytest.mark.asyncio
    async def test_unexpected_host_failure(
        self,
        service: TabGroupService,
        browser: InMemoryBrowser,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test that an unexpected error is logged and reported as no change."""
        tab = browser.open_tab("https://github.com")

        async def get_tab(tab_id: int) -> Tab:
            raise RuntimeError("host exploded")

        monkeypatch.setattr(browser, "get_tab", get_tab)

        assert await service.handle_tab_event(tab.id) is False
        assert service.locks.held_keys == frozenset()
        assert browser.groups == {}

    @pytest.mark.asyncio
    async def test_held_tab_lock_drops_event(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that a tab already being processed is skipped."""
        tab = browser.open_tab("https://github.com")
        service.locks.try_acquire(tab_key(tab.id))

        assert await service.handle_tab_event(tab.id) is False
        assert browser.groups == {}

    @pytest.mark.asyncio
    async def test_bulk_pass_drops_event(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that per-tab events are suppressed during a bulk pass."""
        tab = browser.open_tab("https://github.com")
        service.locks.try_acquire(BULK_OPERATION_KEY)

        assert await service.handle_tab_event(tab.id) is False
        assert browser.calls == []

    @pytest.mark.asyncio
    async def test_lock_released_after_processing(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that the tab lock does not outlive the event."""
        tab = browser.open_tab("https://github.com")

        await service.handle_tab_event(tab.id)

        assert service.locks.held_keys == frozenset()

    @pytest.mark.asyncio
    async def test_state_change_callback(
        self, browser: InMemoryBrowser, state: TabGroupState, fast_retry: RetryConfig
    ) -> None:
        """Test that remembering a new color notifies the owner."""
        on_change = MagicMock()
        service = TabGroupService(
            browser, state, retry_config=fast_retry, on_state_change=on_change
        )
        tab = browser.open_tab("https://github.com")

        await service.handle_tab_event(tab.id)

        on_change.assert_called_once()


class TestMinimumTabs:
    """Tests for minimum group size handling."""

    @pytest.fixture(autouse=True)
    def minimum_two(self, state: TabGroupState) -> None:
        """Require two tabs per group."""
        state.settings = Settings(minimum_tabs_for_group=2)

    @pytest.mark.asyncio
    async def test_single_tab_stays_ungrouped(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that no group is created below the minimum."""
        tab = browser.open_tab("https://github.com")

        assert await service.handle_tab_event(tab.id) is False
        assert browser.groups == {}

    @pytest.mark.asyncio
    async def test_reaching_minimum_groups_waiting_tabs(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that the tab reaching the minimum pulls in matching ungrouped tabs."""
        first = browser.open_tab("https://github.com/a")
        await service.handle_tab_event(first.id)
        second = browser.open_tab("https://github.com/b")

        assert await service.handle_tab_event(second.id) is True
        assert browser.group_titles() == {"Github": [first.id, second.id]}

    @pytest.mark.asyncio
    async def test_leaving_disbands_source_group(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that a group left below its minimum is disbanded."""
        first = browser.open_tab("https://github.com/a")
        second = browser.open_tab("https://github.com/b")
        await service.handle_tab_event(second.id)
        browser.navigate(first.id, "https://example.com")

        assert await service.handle_tab_event(first.id) is True
        assert browser.groups == {}

    @pytest.mark.asyncio
    async def test_rule_override(
        self, service: TabGroupService, browser: InMemoryBrowser, state: TabGroupState
    ) -> None:
        """Test that a rule's own minimum replaces the global one."""
        state.add_rule(Rule(name="Docs", patterns=("docs.example.com",), minimum_tabs=1))
        tab = browser.open_tab("https://docs.example.com")

        assert await service.handle_tab_event(tab.id) is True
        assert browser.group_titles() == {"Docs": [tab.id]}


class TestMovingBetweenGroups:
    """Tests for tabs that change classification."""

    @pytest.mark.asyncio
    async def test_navigation_moves_tab(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that a tab follows its URL to another group."""
        for url in ("https://github.com/a", "https://github.com/b", "https://example.com"):
            tab = browser.open_tab(url)
            await service.handle_tab_event(tab.id)

        browser.navigate(1, "https://example.com/docs")
        assert await service.handle_tab_event(1) is True

        assert browser.group_titles() == {"Github": [2], "Example": [1, 3]}


class TestThresholds:
    """Tests for group threshold checks."""

    async def _group(self, browser: InMemoryBrowser, title: str, urls: list[str]) -> int:
        tabs = [browser.open_tab(url) for url in urls]
        group_id = await browser.group_tabs([tab.id for tab in tabs])
        await browser.update_group(group_id, title=title)
        return group_id

    @pytest.mark.asyncio
    async def test_disbands_small_group(
        self, service: TabGroupService, browser: InMemoryBrowser, state: TabGroupState
    ) -> None:
        """Test that a group below its rule minimum is disbanded."""
        state.add_rule(Rule(name="Docs", patterns=("docs.example.com",), minimum_tabs=3))
        group_id = await self._group(browser, "Docs", ["https://docs.example.com"] * 2)

        assert await service.check_group_threshold(group_id) is True
        assert browser.groups == {}

    @pytest.mark.asyncio
    async def test_minimum_of_one_is_never_disbanded(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that single tab groups are fine with the default minimum."""
        group_id = await self._group(browser, "Github", ["https://github.com"])

        assert await service.check_group_threshold(group_id) is False

    @pytest.mark.asyncio
    async def test_missing_group(self, service: TabGroupService) -> None:
        """Test that a vanished group is not an error."""
        assert await service.check_group_threshold(12345) is False

    @pytest.mark.asyncio
    async def test_check_all_groups(
        self, service: TabGroupService, browser: InMemoryBrowser, state: TabGroupState
    ) -> None:
        """Test that every group of the window is checked."""
        state.settings = Settings(minimum_tabs_for_group=2)
        await self._group(browser, "Github", ["https://github.com"] * 2)
        await self._group(browser, "Example", ["https://example.com"])

        assert await service.check_all_groups_threshold() == 1
        assert list(browser.group_titles()) == ["Github"]


class TestBulkOperations:
    """Tests for grouping and ungrouping whole windows."""

    @pytest.mark.asyncio
    async def test_group_all_tabs(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that every eligible tab lands in its group."""
        browser.open_tab("https://github.com/a")
        browser.open_tab("https://github.com/b")
        browser.open_tab("https://example.com")
        browser.open_tab("https://mail.example.org", pinned=True)
        browser.open_tab("chrome://newtab/")
        browser.open_tab("https://elsewhere.com", window_id=2)

        assert await service.group_all_tabs() is True

        assert browser.group_titles() == {"Github": [1, 2], "Example": [3], "System": [5]}
        assert not service.locks.bulk_active

    @pytest.mark.asyncio
    async def test_group_all_respects_minimum(
        self, service: TabGroupService, browser: InMemoryBrowser, state: TabGroupState
    ) -> None:
        """Test that a bulk pass creates only groups that reach the minimum."""
        state.settings = Settings(minimum_tabs_for_group=2)
        browser.open_tab("https://github.com/a")
        browser.open_tab("https://example.com")
        browser.open_tab("https://github.com/b")

        await service.group_all_tabs()

        assert browser.group_titles() == {"Github": [1, 3]}

    @pytest.mark.asyncio
    async def test_group_all_skipped(
        self, service: TabGroupService, browser: InMemoryBrowser, state: TabGroupState
    ) -> None:
        """Test that a disabled or already running pass does nothing."""
        browser.open_tab("https://github.com")
        state.settings = Settings(auto_grouping_enabled=False)
        assert await service.group_all_tabs() is False

        state.settings = Settings()
        service.locks.try_acquire(BULK_OPERATION_KEY)
        assert await service.group_all_tabs() is False
        assert browser.groups == {}

    @pytest.mark.asyncio
    async def test_group_all_continues_after_tab_failure(
        self,
        service: TabGroupService,
        browser: InMemoryBrowser,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test that one failing tab does not abort the pass."""
        browser.open_tab("https://broken.com")
        browser.open_tab("https://github.com")
        original = browser.get_tab

        async def get_tab(tab_id: int) -> Tab:
            if tab_id == 1:
                raise RuntimeError("boom")
            return await original(tab_id)

        monkeypatch.setattr(browser, "get_tab", get_tab)

        assert await service.group_all_tabs() is True
        assert browser.group_titles() == {"Github": [2]}

    @pytest.mark.asyncio
    async def test_ungroup_all_tabs(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that every tab of the window leaves its group."""
        browser.open_tab("https://github.com")
        browser.open_tab("https://example.com")
        await service.group_all_tabs()

        assert await service.ungroup_all_tabs() is True
        assert browser.groups == {}

    @pytest.mark.asyncio
    async def test_ungroup_system_tabs(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that only the System group is disbanded."""
        browser.open_tab("chrome://settings")
        browser.open_tab("https://github.com")
        await service.group_all_tabs()

        assert await service.ungroup_system_tabs() is True
        assert list(browser.group_titles()) == ["Github"]
        assert await service.ungroup_system_tabs() is False


class TestColors:
    """Tests for color restoration and regeneration."""

    @pytest.mark.asyncio
    async def test_restore_saved_colors(
        self, service: TabGroupService, browser: InMemoryBrowser, state: TabGroupState
    ) -> None:
        """Test that drifted group colors are put back."""
        tab = browser.open_tab("https://github.com")
        await service.handle_tab_event(tab.id)
        assert _group_color(browser, "Github") == "grey"
        state.remember_color("Github", "red")

        assert await service.restore_saved_colors() == 1
        assert _group_color(browser, "Github") == "red"
        assert await service.restore_saved_colors() == 0

    @pytest.mark.asyncio
    async def test_generate_new_colors_skips_rule_groups(
        self,
        service: TabGroupService,
        browser: InMemoryBrowser,
        state: TabGroupState,
        github_rule: Rule,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test that only domain groups are recolored."""
        state.add_rule(github_rule)
        for url in ("https://github.com", "https://example.com"):
            tab = browser.open_tab(url)
            await service.handle_tab_event(tab.id)
        monkeypatch.setattr(TabGroupColor, "random", classmethod(lambda cls: cls.CYAN))

        assert await service.generate_new_colors() == 1
        assert _group_color(browser, "Dev") == "purple"
        assert _group_color(browser, "Example") == "cyan"
        assert state.saved_color("Example") == TabGroupColor.CYAN


class TestCollapse:
    """Tests for collapsing and expanding groups."""

    async def _open_groups(self, service: TabGroupService, browser: InMemoryBrowser) -> None:
        """Open three grouped tabs; the active one is in Github."""
        browser.open_tab("https://github.com", active=True)
        browser.open_tab("https://example.com")
        browser.open_tab("https://wiki.org")
        await service.group_all_tabs()

    def _collapsed(self, browser: InMemoryBrowser) -> dict[str, bool]:
        return {g.title: g.collapsed for g in browser.groups.values()}

    @pytest.mark.asyncio
    async def test_collapse_all_keeps_active_group(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that the active tab's group stays open."""
        await self._open_groups(service, browser)
        assert await service.collapse_all_groups() == 2

        assert self._collapsed(browser) == {"Github": False, "Example": True, "Wiki": True}
        assert await service.groups_collapse_state() is True

    @pytest.mark.asyncio
    async def test_expand_all(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that every collapsed group is expanded."""
        await self._open_groups(service, browser)
        await service.collapse_all_groups()

        assert await service.expand_all_groups() == 2
        assert not any(self._collapsed(browser).values())
        assert await service.groups_collapse_state() is False

    @pytest.mark.asyncio
    async def test_toggle(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that toggling alternates between collapsed and expanded."""
        await self._open_groups(service, browser)
        assert await service.toggle_all_groups_collapse() is True
        assert self._collapsed(browser)["Example"] is True

        assert await service.toggle_all_groups_collapse() is False
        assert not any(self._collapsed(browser).values())

    @pytest.mark.asyncio
    async def test_toggle_without_groups(self, service: TabGroupService) -> None:
        """Test toggling an ungrouped window."""
        assert await service.toggle_all_groups_collapse() is False

    @pytest.mark.asyncio
    async def test_collapse_other_groups(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that activating a tab opens its group and folds the others."""
        await self._open_groups(service, browser)
        await service.collapse_all_groups()
        browser.activate(2)

        await service.collapse_other_groups(2)

        assert self._collapsed(browser) == {"Github": True, "Example": False, "Wiki": True}

    @pytest.mark.asyncio
    async def test_collapse_retries_busy_browser(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that busy errors are retried until the update succeeds."""
        await self._open_groups(service, browser)
        browser.busy_updates = 2

        assert await service.collapse_all_groups() == 2
        assert browser.busy_updates == 0

    @pytest.mark.asyncio
    async def test_collapse_gives_up_after_retries(
        self, service: TabGroupService, browser: InMemoryBrowser
    ) -> None:
        """Test that a persistently busy browser is logged and skipped."""
        await self._open_groups(service, browser)
        browser.busy_updates = 100

        assert await service.collapse_all_groups() == 0
        assert not any(self._collapsed(browser).values())
