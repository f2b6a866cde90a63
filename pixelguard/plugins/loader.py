"""Plugin loading — reads a plugin's manifest and builds a LoadedPlugin."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from pixelguard.errors import (
    EmptyNameError,
    EntryNotFoundError,
    InvalidHookError,
    InvalidManifestError,
    NoHooksError,
)
from pixelguard.models.config import PluginEntry
from pixelguard.models.plugin import LoadedPlugin, PluginManifest
from pixelguard.plugins.discovery import MANIFEST_FILENAME

logger = logging.getLogger(__name__)

DEFAULT_ENTRY = "plugin.py"


def _read_package(package_path: Path) -> dict[str, Any]:
    manifest_path = package_path / MANIFEST_FILENAME
    try:
        with open(manifest_path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise InvalidManifestError(f"Failed to read {manifest_path}") from e
    except tomllib.TOMLDecodeError as e:
        raise InvalidManifestError(f"Invalid {MANIFEST_FILENAME} in {package_path}: {e}") from e


def load_plugin(
    entry: PluginEntry,
    package_path: Path,
    global_options: Optional[dict[str, Any]] = None,
    validate: bool = True,
) -> LoadedPlugin:
    """Load a plugin from its package directory.

    Reads ``[tool.pixelguard]`` from the package's pyproject.toml, resolves
    the entry point and merges options. Global options win over inline
    options from the plugin entry.
    """
    package = _read_package(package_path)
    project = package.get("project", {})
    block = package.get("tool", {}).get("pixelguard")
    if not isinstance(block, dict):
        raise InvalidManifestError(
            f"Plugin at '{package_path}' is missing the [tool.pixelguard] table"
        )

    try:
        manifest = PluginManifest.model_validate(block)
    except ValidationError as e:
        raise InvalidManifestError(
            f"Invalid [tool.pixelguard] manifest in {package_path}: {e}"
        ) from e

    if not manifest.version:
        manifest = manifest.model_copy(update={"version": str(project.get("version", ""))})

    entry_file = manifest.entry or DEFAULT_ENTRY
    entry_path = package_path / entry_file
    if not entry_path.is_file():
        raise EntryNotFoundError(project.get("name") or manifest.name, entry_file, entry_path)

    plugin = LoadedPlugin(
        manifest=manifest,
        package_path=package_path,
        entry_path=entry_path,
        options=merge_options(entry, global_options),
    )
    if validate:
        validate_manifest(plugin)
    return plugin


def merge_options(entry: PluginEntry, global_options: Optional[dict[str, Any]]) -> dict[str, Any]:
    """Merge inline entry options with global ``pluginOptions``; global wins."""
    merged: dict[str, Any] = {}
    if entry.options:
        merged.update(entry.options)
    if global_options:
        merged.update(global_options)
    return merged


def validate_manifest(plugin: LoadedPlugin) -> None:
    """Check required manifest fields and the category's hook whitelist."""
    manifest = plugin.manifest
    if not manifest.name.strip():
        raise EmptyNameError(plugin.package_path)
    if not manifest.hooks:
        raise NoHooksError(manifest.name)

    allowed = manifest.category.allowed_hooks
    for hook in manifest.hooks:
        if hook not in allowed:
            raise InvalidHookError(manifest.name, hook, manifest.category.value, allowed)
