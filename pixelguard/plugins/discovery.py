"""Plugin discovery — maps declared plugin identifiers to package directories."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path

from pixelguard.errors import InvalidManifestError, PluginNotFoundError
from pixelguard.models.config import PluginEntry

logger = logging.getLogger(__name__)

PLUGINS_DIR_NAME = "pixelguard_plugins"
MANIFEST_FILENAME = "pyproject.toml"


def resolve_plugins(
    plugins: list[PluginEntry], working_dir: Path
) -> list[tuple[PluginEntry, Path]]:
    """Resolve each configured plugin entry to its package directory."""
    resolved = []
    for entry in plugins:
        path = resolve_plugin_path(entry.name, working_dir)
        logger.debug("Resolved plugin %s -> %s", entry.name, path)
        resolved.append((entry, path))
    return resolved


def _is_local_path(identifier: str) -> bool:
    return identifier.startswith((".", "/")) or Path(identifier).is_absolute()


def resolve_plugin_path(identifier: str, working_dir: Path) -> Path:
    """Resolve a single plugin identifier.

    Supports:
    - Local paths starting with ``.`` or ``/`` (relative to the working directory)
    - Package names under ``pixelguard_plugins/`` in the working directory
    - The same lookup in every ancestor directory, for nested project layouts
    """
    working_dir = Path(working_dir).resolve()

    if _is_local_path(identifier):
        path = Path(identifier)
        if not path.is_absolute():
            path = working_dir / path
        path = path.resolve()
        if path.is_dir():
            return path
        raise PluginNotFoundError(identifier, [path])

    attempted = []
    for directory in (working_dir, *working_dir.parents):
        candidate = directory / PLUGINS_DIR_NAME / identifier
        attempted.append(candidate)
        if candidate.is_dir():
            return candidate

    raise PluginNotFoundError(identifier, attempted)


def validate_plugin_path(path: Path) -> None:
    """Check that a directory looks like a Pixelguard plugin package."""
    manifest_path = path / MANIFEST_FILENAME
    if not manifest_path.exists():
        raise InvalidManifestError(
            f"Plugin at '{path}' is missing {MANIFEST_FILENAME}"
        )

    try:
        with open(manifest_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise InvalidManifestError(f"Invalid {MANIFEST_FILENAME} in '{path}': {e}") from e

    if not isinstance(data.get("tool", {}).get("pixelguard"), dict):
        raise InvalidManifestError(
            f"Plugin at '{path}' is missing the [tool.pixelguard] table in {MANIFEST_FILENAME}"
        )
