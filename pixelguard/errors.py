"""Exception hierarchy for Pixelguard."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Iterable


class PixelguardError(Exception):
    """Base class for every error raised by Pixelguard."""


class ConfigError(PixelguardError):
    pass


class ComparisonError(PixelguardError):
    """An image could not be loaded or compared."""

    def __init__(self, path: Path, message: str):
        self.path = path
        super().__init__(message)


class StorageError(PixelguardError):
    pass


# --- Plugin errors -----------------------------------------------------------


class PluginError(PixelguardError):
    """Base class for plugin resolution, manifest and execution errors."""


class PluginNotFoundError(PluginError):
    def __init__(self, identifier: str, attempted: Iterable[Path]):
        self.identifier = identifier
        self.attempted = [Path(p) for p in attempted]
        locations = "\n".join(f"  - {p}" for p in self.attempted)
        super().__init__(
            f"Plugin '{identifier}' not found. Looked in:\n{locations}"
        )


class ManifestError(PluginError):
    """A plugin's declaration is missing, malformed or incomplete."""


class InvalidManifestError(ManifestError):
    pass


class EntryNotFoundError(ManifestError):
    def __init__(self, plugin_name: str, entry: str, entry_path: Path):
        self.plugin_name = plugin_name
        self.entry = entry
        self.entry_path = entry_path
        super().__init__(
            f"Plugin '{plugin_name}' entry point '{entry}' not found at '{entry_path}'"
        )


class EmptyNameError(ManifestError):
    def __init__(self, package_path: Path):
        self.package_path = package_path
        super().__init__(
            f"Plugin at '{package_path}' has empty name in its [tool.pixelguard] manifest"
        )


class NoHooksError(ManifestError):
    def __init__(self, plugin_name: str):
        self.plugin_name = plugin_name
        super().__init__(f"Plugin '{plugin_name}' has no hooks defined")


class InvalidHookError(ManifestError):
    def __init__(self, plugin_name: str, hook: str, category: str, allowed: Iterable[str]):
        self.plugin_name = plugin_name
        self.hook = hook
        self.category = category
        self.allowed = sorted(allowed)
        super().__init__(
            f"Plugin '{plugin_name}' declares invalid hook '{hook}' for category "
            f"{category}. Valid hooks for {category}: {', '.join(self.allowed)}"
        )


class HookErrorKind(str, Enum):
    """Why a hook invocation failed."""

    NOT_IMPLEMENTED = "not_implemented"
    THROWN = "thrown"
    TIMEOUT = "timeout"
    PROTOCOL = "protocol"


class HookExecutionError(PluginError):
    """A hook call did not produce a usable result."""

    def __init__(self, plugin_name: str, hook_name: str, message: str):
        self.plugin_name = plugin_name
        self.hook_name = hook_name
        super().__init__(message)


class HookFailedError(HookExecutionError):
    def __init__(self, plugin_name: str, hook_name: str, message: str,
                 kind: HookErrorKind = HookErrorKind.THROWN):
        self.message = message
        self.kind = kind
        super().__init__(
            plugin_name, hook_name,
            f"Plugin '{plugin_name}' hook '{hook_name}' failed: {message}",
        )


class HookOutputMismatchError(HookExecutionError):
    def __init__(self, plugin_name: str, hook_name: str, detail: str = ""):
        message = f"Failed to parse output from plugin '{plugin_name}' hook '{hook_name}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(plugin_name, hook_name, message)
