"""Pytest configuration and shared fixtures."""

import json
import textwrap
from pathlib import Path
from typing import Any, Callable, Optional

import pytest
from PIL import Image

from pixelguard.models.config import PixelguardConfig, PluginEntry, Shot
from pixelguard.models.plugin import LoadedPlugin, PluginCategory, PluginManifest
from pixelguard.plugins.registry import PluginRegistry

WHITE = (255, 255, 255, 255)
BLACK = (0, 0, 0, 255)


# ============================================================================
# Helpers
# ============================================================================


def _toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_toml_value(v) for v in value) + "]"
    return json.dumps(value)


def write_plugin_package(
    directory: Path,
    manifest: Optional[dict[str, Any]],
    code: str = "",
    project_name: str = "pixelguard-plugin-test",
    version: str = "1.0.0",
    entry_file: Optional[str] = "plugin.py",
) -> Path:
    """Create a plugin package: pyproject.toml plus an entry module."""
    directory.mkdir(parents=True, exist_ok=True)
    lines = ["[project]", f"name = {_toml_value(project_name)}", f"version = {_toml_value(version)}", ""]
    if manifest is not None:
        lines.append("[tool.pixelguard]")
        lines.extend(f"{key} = {_toml_value(value)}" for key, value in manifest.items())
    (directory / "pyproject.toml").write_text("\n".join(lines) + "\n")
    if entry_file:
        (directory / entry_file).write_text(textwrap.dedent(code))
    return directory


def write_png(path: Path, color: tuple = WHITE, size: tuple[int, int] = (100, 100)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGBA", size, color).save(path)
    return path


def make_loaded_plugin(
    name: str,
    category: PluginCategory,
    hooks: tuple[str, ...] = ("test",),
    package_path: Path = Path("/test"),
    options: Optional[dict[str, Any]] = None,
) -> LoadedPlugin:
    return LoadedPlugin(
        manifest=PluginManifest(
            name=name, category=category, entry="plugin.py", hooks=hooks, version="1.0.0"
        ),
        package_path=package_path,
        entry_path=package_path / "plugin.py",
        options=options or {},
    )


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def config() -> PixelguardConfig:
    """A config with two shots and the default output directory."""
    return PixelguardConfig(
        source="manual",
        base_url="http://localhost:3000",
        threshold=0.01,
        shots=[Shot(name="home", path="/"), Shot(name="about", path="/about")],
    )


@pytest.fixture
def output_dir(tmp_path: Path, config: PixelguardConfig) -> Path:
    out = config.output_path(tmp_path)
    (out / "baseline").mkdir(parents=True)
    (out / "current").mkdir(parents=True)
    return out


# ============================================================================
# Plugin Fixtures
# ============================================================================


@pytest.fixture
def make_plugin(tmp_path: Path) -> Callable[..., LoadedPlugin]:
    """Factory writing a real plugin module and returning it as a LoadedPlugin."""
    counter = {"n": 0}

    def factory(
        code: str,
        category: PluginCategory = PluginCategory.STORAGE,
        hooks: tuple[str, ...] = ("testHook",),
        name: str = "Test Plugin",
        options: Optional[dict[str, Any]] = None,
    ) -> LoadedPlugin:
        counter["n"] += 1
        package = tmp_path / f"plugin_{counter['n']}"
        package.mkdir()
        (package / "plugin.py").write_text(textwrap.dedent(code))
        return LoadedPlugin(
            manifest=PluginManifest(name=name, category=category, entry="plugin.py", hooks=hooks),
            package_path=package,
            entry_path=package / "plugin.py",
            options={"testOption": "testValue"} if options is None else options,
        )

    return factory


@pytest.fixture
def registry() -> PluginRegistry:
    return PluginRegistry()


@pytest.fixture
def plugin_entry() -> PluginEntry:
    return PluginEntry(name="pixelguard-plugin-test")
