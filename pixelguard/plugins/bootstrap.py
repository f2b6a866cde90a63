"""Plugin system bootstrap — resolve, load, validate and register plugins."""

from __future__ import annotations

import logging
from pathlib import Path

from pixelguard.models.config import PixelguardConfig
from pixelguard.plugins.discovery import resolve_plugins, validate_plugin_path
from pixelguard.plugins.loader import load_plugin
from pixelguard.plugins.registry import PluginRegistry

logger = logging.getLogger(__name__)


def init_plugins(config: PixelguardConfig, working_dir: Path) -> PluginRegistry:
    """Build the plugin registry for one pipeline run.

    Any resolution or manifest error aborts initialization; a partially
    loaded plugin set is never returned.
    """
    registry = PluginRegistry()
    if not config.plugins:
        logger.debug("No plugins configured")
        return registry

    logger.info("Loading %d plugin(s)...", len(config.plugins))
    for entry, path in resolve_plugins(config.plugins, Path(working_dir)):
        logger.debug("Loading plugin %s from %s", entry.name, path)
        validate_plugin_path(path)
        plugin = load_plugin(entry, path, config.plugin_options.get(entry.name))
        logger.info(
            "  Loaded: %s (%s, hooks: %s)",
            plugin.name, plugin.category.value, ", ".join(plugin.manifest.hooks),
        )
        registry.register(plugin)

    return registry
