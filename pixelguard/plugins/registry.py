"""Plugin registry — indexes loaded plugins by category and by name."""

from __future__ import annotations

import logging
from typing import Optional

from pixelguard.models.plugin import LoadedPlugin, PluginCategory

logger = logging.getLogger(__name__)


class PluginRegistry:
    """Loaded plugins organized for lookup.

    Stackable categories (notifier, reporter) keep every plugin in
    registration order. Single-winner categories (storage, capture, differ)
    keep only the most recently registered plugin as the active one; earlier
    plugins stay reachable through :meth:`get_by_name`.
    """

    def __init__(self) -> None:
        self._by_category: dict[PluginCategory, LoadedPlugin] = {}
        self._notifiers: list[LoadedPlugin] = []
        self._reporters: list[LoadedPlugin] = []
        self._by_name: dict[str, LoadedPlugin] = {}

    def register(self, plugin: LoadedPlugin) -> None:
        previous = self._by_name.get(plugin.name)
        self._by_name[plugin.name] = plugin

        if previous is not None:
            logger.debug("Replacing previously registered plugin %s", plugin.name)
            if previous.category == plugin.category and plugin.category.can_stack:
                # Same stack: keep the original position
                stack = self._stack_for(plugin.category)
                stack[:] = [plugin if p is previous else p for p in stack]
                return
            self._discard(previous)

        if plugin.category.can_stack:
            self._stack_for(plugin.category).append(plugin)
        else:
            self._by_category[plugin.category] = plugin

    def _stack_for(self, category: PluginCategory) -> list[LoadedPlugin]:
        return self._notifiers if category == PluginCategory.NOTIFIER else self._reporters

    def _discard(self, plugin: LoadedPlugin) -> None:
        if plugin.category.can_stack:
            stack = self._stack_for(plugin.category)
            stack[:] = [p for p in stack if p is not plugin]
        elif self._by_category.get(plugin.category) is plugin:
            del self._by_category[plugin.category]

    def get(self, category: PluginCategory) -> Optional[LoadedPlugin]:
        """Active plugin for a single-winner category.

        Always None for stackable categories; use notifiers() or reporters().
        """
        if category.can_stack:
            return None
        return self._by_category.get(category)

    def get_by_name(self, name: str) -> Optional[LoadedPlugin]:
        return self._by_name.get(name)

    def notifiers(self) -> list[LoadedPlugin]:
        return list(self._notifiers)

    def reporters(self) -> list[LoadedPlugin]:
        return list(self._reporters)

    def has_override(self, category: PluginCategory) -> bool:
        if category == PluginCategory.NOTIFIER:
            return bool(self._notifiers)
        if category == PluginCategory.REPORTER:
            return bool(self._reporters)
        return category in self._by_category

    def plugin_names(self) -> list[str]:
        return sorted(self._by_name)

    def all_active(self) -> list[LoadedPlugin]:
        """Single-winner plugins followed by notifiers and reporters."""
        active = [self._by_category[c] for c in PluginCategory if c in self._by_category]
        return active + self._notifiers + self._reporters

    def __len__(self) -> int:
        return len(self._by_name)

    def __bool__(self) -> bool:
        return bool(self._by_name)
