"""Message handler for popup, sidebar and rule editor requests."""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any, ClassVar, TypeAlias

from tabgroups.matching.patterns import validate_pattern
from tabgroups.models.event import TabEvent
from tabgroups.rules.resolver import find_matching_rule, resolve
from tabgroups.rules.service import RuleNotFoundError
from tabgroups.rules.validation import RuleValidationError, rule_patterns
from tabgroups.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from tabgroups.background import Background
    from tabgroups.state import TabGroupState

logger = get_logger("messages.handler")

Response: TypeAlias = dict[str, Any]


class MessageHandler:
    """Dispatches UI messages to the grouping and rules services."""

    # Message action -> handler method name
    ACTIONS: ClassVar[dict[str, str]] = {
        "group": "_handle_group",
        "ungroup": "_handle_ungroup",
        "checkThresholds": "_handle_check_thresholds",
        "generateNewColors": "_handle_generate_new_colors",
        "restoreSavedColors": "_handle_restore_saved_colors",
        "collapseAll": "_handle_collapse_all",
        "expandAll": "_handle_expand_all",
        "toggleCollapse": "_handle_toggle_collapse",
        "getGroupsCollapseState": "_handle_get_groups_collapse_state",
        "getAutoGroupState": "_handle_get_auto_group_state",
        "toggleAutoGroup": "_handle_toggle_auto_group",
        "getGroupNewTabsState": "_handle_get_group_new_tabs_state",
        "toggleGroupNewTabs": "_handle_toggle_group_new_tabs",
        "getGroupByMode": "_handle_get_group_by_mode",
        "setGroupByMode": "_handle_set_group_by_mode",
        "getMinimumTabsForGroup": "_handle_get_minimum_tabs",
        "setMinimumTabsForGroup": "_handle_set_minimum_tabs",
        "getAutoCollapseState": "_handle_get_auto_collapse_state",
        "updateAutoCollapse": "_handle_update_auto_collapse",
        "getCustomRules": "_handle_get_custom_rules",
        "addCustomRule": "_handle_add_custom_rule",
        "updateCustomRule": "_handle_update_custom_rule",
        "deleteCustomRule": "_handle_delete_custom_rule",
        "getRulesStats": "_handle_get_rules_stats",
        "getExportStats": "_handle_get_export_stats",
        "exportRules": "_handle_export_rules",
        "importRules": "_handle_import_rules",
        "analyzeRuleConflicts": "_handle_analyze_rule_conflicts",
        "validatePattern": "_handle_validate_pattern",
        "resolveUrl": "_handle_resolve_url",
        "tabEvent": "_handle_tab_event",
    }

    def __init__(self, background: Background) -> None:
        self.background = background

    @property
    def state(self) -> TabGroupState:
        return self.background.state

    async def dispatch(self, action: str, payload: dict[str, Any] | None = None) -> Response:
        """Dispatch a message to the handler for its action.

        Validation failures and unknown ids become ``{"success": false}``
        responses; they never raise to the caller.

        Args:
            action: Message action name.
            payload: Message fields other than the action.

        Returns:
            Response dictionary.
        """
        payload = payload or {}
        logger.info("Dispatching message", extra={"action": action})

        method_name = self.ACTIONS.get(action)
        if method_name is None:
            return self._handle_unsupported(action)

        handler: Callable[[dict[str, Any]], Awaitable[Response]] = getattr(self, method_name)
        try:
            return await handler(payload)
        except RuleValidationError as e:
            logger.info("Rule rejected", extra={"action": action, "errors": e.errors})
            return {"success": False, "error": str(e), "errors": e.errors}
        except RuleNotFoundError as e:
            return {"success": False, "error": str(e)}
        except KeyError as e:
            return {"success": False, "error": f"Missing required field: {e}"}
        except (TypeError, ValueError) as e:
            logger.info("Invalid message payload", extra={"action": action, "error": str(e)})
            return {"success": False, "error": str(e)}

    def _handle_unsupported(self, action: str) -> Response:
        logger.info("Ignoring unknown action", extra={"action": action})
        return {"error": "unknown_action", "message": f"Unknown action: {action}"}

    async def _regroup(self) -> None:
        """Rebuild groups after a change that affects classification."""
        if self.state.settings.auto_grouping_enabled:
            await self.background.tabs.ungroup_all_tabs()
            await self.background.tabs.group_all_tabs()

    def _update_settings(self, **changes: Any) -> None:
        self.state.settings = dataclasses.replace(self.state.settings, **changes)
        self.background.save_state()

    # Grouping

    async def _handle_group(self, payload: dict[str, Any]) -> Response:  # noqa: ARG002
        await self.background.tabs.group_all_tabs(force=True)
        return {"success": True}

    async def _handle_ungroup(self, payload: dict[str, Any]) -> Response:  # noqa: ARG002
        await self.background.tabs.ungroup_all_tabs()
        return {"success": True}

    async def _handle_check_thresholds(self, payload: dict[str, Any]) -> Response:
        disbanded = await self.background.tabs.check_all_groups_threshold(payload.get("windowId"))
        return {"success": True, "disbanded": disbanded}

    async def _handle_tab_event(self, payload: dict[str, Any]) -> Response:
        changed = await self.background.events.process(TabEvent.from_payload(payload))
        return {"success": True, "changed": changed}

    # Colors and collapse

    async def _handle_generate_new_colors(self, payload: dict[str, Any]) -> Response:  # noqa: ARG002
        recolored = await self.background.tabs.generate_new_colors()
        return {"success": True, "recolored": recolored}

    async def _handle_restore_saved_colors(self, payload: dict[str, Any]) -> Response:  # noqa: ARG002
        restored = await self.background.tabs.restore_saved_colors()
        return {"success": True, "restored": restored}

    async def _handle_collapse_all(self, payload: dict[str, Any]) -> Response:  # noqa: ARG002
        await self.background.tabs.collapse_all_groups()
        return {"success": True}

    async def _handle_expand_all(self, payload: dict[str, Any]) -> Response:  # noqa: ARG002
        await self.background.tabs.expand_all_groups()
        return {"success": True}

    async def _handle_toggle_collapse(self, payload: dict[str, Any]) -> Response:  # noqa: ARG002
        collapsed = await self.background.tabs.toggle_all_groups_collapse()
        return {"success": True, "isCollapsed": collapsed}

    async def _handle_get_groups_collapse_state(self, payload: dict[str, Any]) -> Response:  # noqa: ARG002
        return {"isCollapsed": await self.background.tabs.groups_collapse_state()}

    # Settings

    async def _handle_get_auto_group_state(self, payload: dict[str, Any]) -> Response:  # noqa: ARG002
        return {"enabled": self.state.settings.auto_grouping_enabled}

    async def _handle_toggle_auto_group(self, payload: dict[str, Any]) -> Response:
        self._update_settings(auto_grouping_enabled=bool(payload["enabled"]))
        if self.state.settings.auto_grouping_enabled:
            await self.background.tabs.group_all_tabs()
        return {"enabled": self.state.settings.auto_grouping_enabled}

    async def _handle_get_group_new_tabs_state(self, payload: dict[str, Any]) -> Response:  # noqa: ARG002
        return {"enabled": self.state.settings.group_new_tabs}

    async def _handle_toggle_group_new_tabs(self, payload: dict[str, Any]) -> Response:
        enabled = bool(payload["enabled"])
        self._update_settings(group_new_tabs=enabled)
        if self.state.settings.auto_grouping_enabled:
            if enabled:
                await self.background.tabs.group_all_tabs()
            else:
                await self.background.tabs.ungroup_system_tabs()
        return {"enabled": enabled}

    async def _handle_get_group_by_mode(self, payload: dict[str, Any]) -> Response:  # noqa: ARG002
        return {"mode": self.state.settings.group_by_mode.value}

    async def _handle_set_group_by_mode(self, payload: dict[str, Any]) -> Response:
        self._update_settings(group_by_mode=payload["mode"])
        await self._regroup()
        return {"mode": self.state.settings.group_by_mode.value}

    async def _handle_get_minimum_tabs(self, payload: dict[str, Any]) -> Response:  # noqa: ARG002
        return {"minimumTabs": self.state.settings.minimum_tabs_for_group}

    async def _handle_set_minimum_tabs(self, payload: dict[str, Any]) -> Response:
        self._update_settings(minimum_tabs_for_group=payload.get("minimumTabs") or 1)
        if self.state.settings.auto_grouping_enabled:
            await self.background.tabs.check_all_groups_threshold()
            await self.background.tabs.group_all_tabs()
        return {"minimumTabs": self.state.settings.minimum_tabs_for_group}

    async def _handle_get_auto_collapse_state(self, payload: dict[str, Any]) -> Response:  # noqa: ARG002
        settings = self.state.settings
        return {
            "enabled": settings.auto_collapse_enabled,
            "delayMs": settings.auto_collapse_delay_ms,
        }

    async def _handle_update_auto_collapse(self, payload: dict[str, Any]) -> Response:
        settings = self.state.settings
        self._update_settings(
            auto_collapse_enabled=bool(
                payload.get("autoCollapseEnabled", settings.auto_collapse_enabled)
            ),
            auto_collapse_delay_ms=payload.get(
                "autoCollapseDelayMs", settings.auto_collapse_delay_ms
            ),
        )
        return {"success": True}

    # Rules

    async def _handle_get_custom_rules(self, payload: dict[str, Any]) -> Response:  # noqa: ARG002
        rules = self.background.rules.list_rules()
        return {"customRules": {rule.id: rule.to_dict() for rule in rules}}

    async def _handle_add_custom_rule(self, payload: dict[str, Any]) -> Response:
        rule = self.background.rules.add_rule(payload["ruleData"])
        if self.state.settings.auto_grouping_enabled:
            await self.background.tabs.group_all_tabs()
        return {"success": True, "ruleId": rule.id}

    async def _handle_update_custom_rule(self, payload: dict[str, Any]) -> Response:
        self.background.rules.update_rule(payload["ruleId"], payload["ruleData"])
        await self._regroup()
        return {"success": True}

    async def _handle_delete_custom_rule(self, payload: dict[str, Any]) -> Response:
        self.background.rules.delete_rule(payload["ruleId"])
        await self._regroup()
        return {"success": True}

    async def _handle_get_rules_stats(self, payload: dict[str, Any]) -> Response:  # noqa: ARG002
        return {"stats": self.background.rules.rules_stats()}

    async def _handle_get_export_stats(self, payload: dict[str, Any]) -> Response:  # noqa: ARG002
        stats = self.background.rules.rules_stats()
        return {"success": True, "stats": {**stats, "exportReady": stats["totalRules"] > 0}}

    async def _handle_export_rules(self, payload: dict[str, Any]) -> Response:  # noqa: ARG002
        return {"success": True, "data": self.background.rules.export_rules()}

    async def _handle_import_rules(self, payload: dict[str, Any]) -> Response:
        result = self.background.rules.import_rules(
            payload["jsonData"],
            replace=bool(payload.get("replaceExisting", False)),
        )
        if result.success:
            await self._regroup()
        return result.to_dict()

    async def _handle_analyze_rule_conflicts(self, payload: dict[str, Any]) -> Response:
        rule_data = payload.get("ruleData")
        patterns = rule_patterns(rule_data) if isinstance(rule_data, dict) else None
        if not isinstance(patterns, list):
            return {
                "success": False,
                "hasConflicts": False,
                "conflicts": [],
                "error": "Invalid rule data",
            }

        conflicts = self.background.rules.conflicts_for(patterns, payload.get("excludeRuleId"))
        return {
            "success": True,
            "hasConflicts": bool(conflicts),
            "conflicts": [conflict.to_dict() for conflict in conflicts],
        }

    # Pattern tools

    async def _handle_validate_pattern(self, payload: dict[str, Any]) -> Response:
        return validate_pattern(payload["pattern"]).to_dict()

    async def _handle_resolve_url(self, payload: dict[str, Any]) -> Response:
        url = payload["url"]
        config = self.state.resolver_config()
        classification = resolve(url, config)
        match = find_matching_rule(url, config)
        return {
            "classification": classification.to_dict() if classification else None,
            "matchedPattern": match.pattern if match else None,
            "extractedValues": match.extracted_values if match else {},
        }
