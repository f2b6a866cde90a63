"""Plugin data structures: categories, manifests, envelopes and hook payloads."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from pixelguard.errors import HookErrorKind
from pixelguard.models.config import CamelModel


class PluginCategory(str, Enum):
    STORAGE = "storage"
    REPORTER = "reporter"
    CAPTURE = "capture"
    DIFFER = "differ"
    NOTIFIER = "notifier"

    @property
    def can_stack(self) -> bool:
        """Whether every registered plugin of this category runs.

        Notifiers and reporters stack; storage, capture and differ only use
        the most recently registered plugin.
        """
        return self in (PluginCategory.NOTIFIER, PluginCategory.REPORTER)

    @property
    def allowed_hooks(self) -> frozenset[str]:
        return ALLOWED_HOOKS[self]


ALLOWED_HOOKS: dict[PluginCategory, frozenset[str]] = {
    PluginCategory.STORAGE: frozenset({"read", "write", "exists", "list", "delete"}),
    PluginCategory.REPORTER: frozenset({"generate"}),
    PluginCategory.CAPTURE: frozenset({"capture"}),
    PluginCategory.DIFFER: frozenset({"compare"}),
    PluginCategory.NOTIFIER: frozenset({"notify"}),
}


class PluginManifest(CamelModel):
    """The [tool.pixelguard] block of a plugin's pyproject.toml."""

    model_config = ConfigDict(frozen=True)

    name: str
    category: PluginCategory
    entry: str = ""
    hooks: tuple[str, ...] = ()
    version: str = ""
    options_schema: Optional[dict[str, Any]] = None


class LoadedPlugin(BaseModel):
    """A validated plugin with resolved paths and merged options."""

    model_config = ConfigDict(frozen=True)

    manifest: PluginManifest
    package_path: Path
    entry_path: Path
    options: dict[str, Any] = Field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.manifest.name

    @property
    def category(self) -> PluginCategory:
        return self.manifest.category


class HookEnvelope(CamelModel):
    """The single JSON line a hook process writes to stdout."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    error_kind: Optional[HookErrorKind] = None

    @classmethod
    def ok(cls, data: Any = None) -> "HookEnvelope":
        return cls(success=True, data=data)

    @classmethod
    def err(cls, message: str, kind: HookErrorKind = HookErrorKind.THROWN) -> "HookEnvelope":
        return cls(success=False, error=message, error_kind=kind)


# --- Storage -----------------------------------------------------------------


class StorageInput(CamelModel):
    path: str
    data: Optional[str] = None  # base64
    options: Optional[dict[str, Any]] = None


class StorageOutput(CamelModel):
    data: Optional[str] = None  # base64
    exists: Optional[bool] = None
    files: Optional[list[str]] = None


# --- Capture -----------------------------------------------------------------


class CaptureShot(CamelModel):
    name: str
    path: str
    wait_for: Optional[str] = None
    delay: Optional[int] = None


class CaptureViewport(CamelModel):
    width: int
    height: int


class CaptureInput(CamelModel):
    shots: list[CaptureShot]
    base_url: str
    viewport: CaptureViewport
    output_dir: str
    options: Optional[dict[str, Any]] = None


class CapturedShot(CamelModel):
    name: str
    path: str


class FailedShot(CamelModel):
    name: str
    error: str


class CaptureOutput(CamelModel):
    captured: list[CapturedShot] = Field(default_factory=list)
    failed: list[FailedShot] = Field(default_factory=list)


# --- Differ ------------------------------------------------------------------


class DifferInput(CamelModel):
    baseline_path: str
    current_path: str
    diff_path: str
    threshold: float
    options: Optional[dict[str, Any]] = None


class DifferOutput(CamelModel):
    diff_percentage: float = Field(ge=0.0, le=100.0)
    matches: bool


# --- Reporter / notifier -----------------------------------------------------


class ReporterChangedShot(CamelModel):
    name: str
    baseline_path: str
    current_path: str
    diff_path: str
    diff_percentage: float
    viewport: Optional[str] = None


class ReporterDiffResult(CamelModel):
    unchanged: list[str] = Field(default_factory=list)
    changed: list[ReporterChangedShot] = Field(default_factory=list)
    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)


class ReporterConfig(CamelModel):
    source: str
    base_url: str
    threshold: float


class ReporterInput(CamelModel):
    result: ReporterDiffResult
    config: ReporterConfig
    output_dir: str
    options: Optional[dict[str, Any]] = None


class ReporterOutput(CamelModel):
    model_config = ConfigDict(extra="allow")

    report_path: Optional[str] = None
    report_url: Optional[str] = None


class NotifierInput(CamelModel):
    result: ReporterDiffResult
    report_path: Optional[str] = None
    report_url: Optional[str] = None
    ci_mode: bool = False
    options: Optional[dict[str, Any]] = None
