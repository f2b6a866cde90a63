"""Tests for plugin manifest loading and validation."""

import pytest

from pixelguard.errors import (
    EmptyNameError,
    EntryNotFoundError,
    InvalidHookError,
    InvalidManifestError,
    NoHooksError,
)
from pixelguard.models.config import PluginEntry
from pixelguard.models.plugin import PluginCategory
from pixelguard.plugins.loader import DEFAULT_ENTRY, load_plugin, merge_options, validate_manifest

from conftest import make_loaded_plugin, write_plugin_package


class TestLoadPlugin:
    """Tests for load_plugin."""

    def test_load_valid_plugin(self, tmp_path, plugin_entry):
        """Test a complete manifest produces a LoadedPlugin with resolved paths."""
        package = write_plugin_package(
            tmp_path / "pkg",
            {"name": "Test Storage", "category": "storage", "entry": "main.py", "hooks": ["read", "write"]},
            entry_file="main.py",
        )
        plugin = load_plugin(plugin_entry, package)

        assert plugin.name == "Test Storage"
        assert plugin.category == PluginCategory.STORAGE
        assert plugin.manifest.hooks == ("read", "write")
        assert plugin.package_path == package
        assert plugin.entry_path == package / "main.py"

    def test_default_entry_file(self, tmp_path, plugin_entry):
        package = write_plugin_package(
            tmp_path / "pkg", {"name": "Notifier", "category": "notifier", "hooks": ["notify"]}
        )
        plugin = load_plugin(plugin_entry, package)
        assert plugin.entry_path == package / DEFAULT_ENTRY

    def test_version_falls_back_to_project_version(self, tmp_path, plugin_entry):
        package = write_plugin_package(
            tmp_path / "pkg",
            {"name": "Differ", "category": "differ", "hooks": ["compare"]},
            version="2.3.4",
        )
        assert load_plugin(plugin_entry, package).manifest.version == "2.3.4"

    def test_manifest_version_wins(self, tmp_path, plugin_entry):
        package = write_plugin_package(
            tmp_path / "pkg",
            {"name": "Differ", "category": "differ", "hooks": ["compare"], "version": "9.0.0"},
            version="2.3.4",
        )
        assert load_plugin(plugin_entry, package).manifest.version == "9.0.0"

    def test_camel_case_options_schema(self, tmp_path, plugin_entry):
        package = tmp_path / "pkg"
        write_plugin_package(package, {"name": "S3", "category": "storage", "hooks": ["read"]})
        with open(package / "pyproject.toml", "a") as f:
            f.write("\n[tool.pixelguard.optionsSchema]\nbucket = \"string\"\n")
        plugin = load_plugin(plugin_entry, package)
        assert plugin.manifest.options_schema == {"bucket": "string"}

    def test_inline_options(self, tmp_path):
        package = write_plugin_package(tmp_path / "pkg", {"name": "S3", "category": "storage", "hooks": ["read"]})
        entry = PluginEntry(name="pkg", options={"bucket": "inline", "region": "eu-west-1"})
        plugin = load_plugin(entry, package)
        assert plugin.options == {"bucket": "inline", "region": "eu-west-1"}

    def test_global_options_override_inline(self, tmp_path):
        """Test pluginOptions from the config win over inline entry options."""
        package = write_plugin_package(tmp_path / "pkg", {"name": "S3", "category": "storage", "hooks": ["read"]})
        entry = PluginEntry(name="pkg", options={"bucket": "inline", "region": "eu-west-1"})
        plugin = load_plugin(entry, package, {"bucket": "global"})
        assert plugin.options == {"bucket": "global", "region": "eu-west-1"}

    def test_missing_entry_file(self, tmp_path, plugin_entry):
        package = write_plugin_package(
            tmp_path / "pkg",
            {"name": "Broken", "category": "storage", "entry": "missing.py", "hooks": ["read"]},
        )
        with pytest.raises(EntryNotFoundError) as exc_info:
            load_plugin(plugin_entry, package)
        assert exc_info.value.entry == "missing.py"
        assert exc_info.value.entry_path == package / "missing.py"

    def test_missing_pyproject(self, tmp_path, plugin_entry):
        (tmp_path / "pkg").mkdir()
        with pytest.raises(InvalidManifestError):
            load_plugin(plugin_entry, tmp_path / "pkg")

    def test_missing_tool_table(self, tmp_path, plugin_entry):
        package = write_plugin_package(tmp_path / "pkg", None)
        with pytest.raises(InvalidManifestError, match="missing"):
            load_plugin(plugin_entry, package)

    def test_unknown_category(self, tmp_path, plugin_entry):
        package = write_plugin_package(
            tmp_path / "pkg", {"name": "Odd", "category": "uploader", "hooks": ["upload"]}
        )
        with pytest.raises(InvalidManifestError, match="Invalid"):
            load_plugin(plugin_entry, package)

    def test_empty_name(self, tmp_path, plugin_entry):
        package = write_plugin_package(tmp_path / "pkg", {"name": "  ", "category": "storage", "hooks": ["read"]})
        with pytest.raises(EmptyNameError, match="has empty name"):
            load_plugin(plugin_entry, package)

    def test_no_hooks(self, tmp_path, plugin_entry):
        package = write_plugin_package(tmp_path / "pkg", {"name": "Lazy", "category": "storage", "hooks": []})
        with pytest.raises(NoHooksError, match="has no hooks defined"):
            load_plugin(plugin_entry, package)

    def test_skip_validation(self, tmp_path, plugin_entry):
        package = write_plugin_package(tmp_path / "pkg", {"name": "Lazy", "category": "storage", "hooks": []})
        plugin = load_plugin(plugin_entry, package, validate=False)
        assert plugin.manifest.hooks == ()


class TestValidateManifest:
    """Tests for validate_manifest."""

    @pytest.mark.parametrize(
        "category,hooks",
        [
            (PluginCategory.STORAGE, ("read", "write", "exists", "list", "delete")),
            (PluginCategory.REPORTER, ("generate",)),
            (PluginCategory.CAPTURE, ("capture",)),
            (PluginCategory.DIFFER, ("compare",)),
            (PluginCategory.NOTIFIER, ("notify",)),
        ],
    )
    def test_allowed_hooks_pass(self, category, hooks):
        validate_manifest(make_loaded_plugin("Plugin", category, hooks))

    def test_invalid_hook_for_category(self):
        plugin = make_loaded_plugin("Bad Storage", PluginCategory.STORAGE, ("read", "compare"))
        with pytest.raises(InvalidHookError) as exc_info:
            validate_manifest(plugin)
        err = exc_info.value
        assert err.hook == "compare"
        assert "declares invalid hook" in str(err)
        assert err.allowed == ["delete", "exists", "list", "read", "write"]
        assert "delete, exists, list, read, write" in str(err)

    def test_subset_of_hooks_is_fine(self):
        validate_manifest(make_loaded_plugin("Read Only", PluginCategory.STORAGE, ("read", "exists")))


class TestMergeOptions:
    """Tests for merge_options."""

    def test_no_options(self):
        assert merge_options(PluginEntry(name="x"), None) == {}

    def test_global_only(self):
        assert merge_options(PluginEntry(name="x"), {"a": 1}) == {"a": 1}

    def test_global_wins_per_key(self):
        entry = PluginEntry(name="x", options={"a": 1, "b": 2})
        assert merge_options(entry, {"b": 3, "c": 4}) == {"a": 1, "b": 3, "c": 4}
