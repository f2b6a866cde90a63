"""Diff result data structures produced by the comparison engine."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from pixelguard.models.plugin import ReporterChangedShot, ReporterDiffResult

VIEWPORT_SEPARATOR = "@"


def parse_shot_name(name: str) -> tuple[str, Optional[str]]:
    """Split ``shot@viewport`` into ``(shot, viewport)``.

    Names without the separator are returned unchanged with no viewport.
    """
    base, sep, viewport = name.rpartition(VIEWPORT_SEPARATOR)
    if not sep:
        return name, None
    return base, viewport


class ChangedShot(BaseModel):
    name: str  # includes the viewport suffix, e.g. "button@mobile"
    baseline_path: Path
    current_path: Path
    diff_path: Path
    diff_percentage: float = Field(ge=0.0, le=100.0)
    viewport: Optional[str] = None


class DiffResult(BaseModel):
    unchanged: list[str] = Field(default_factory=list)
    changed: list[ChangedShot] = Field(default_factory=list)
    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)

    def has_changes(self) -> bool:
        """True if any shot changed, was added, or was removed."""
        return bool(self.changed or self.added or self.removed)

    def sort(self) -> None:
        self.unchanged.sort()
        self.added.sort()
        self.removed.sort()
        self.changed.sort(key=lambda shot: shot.name)

    def to_payload(self) -> ReporterDiffResult:
        """Convert to the shape handed to reporter and notifier plugins."""
        return ReporterDiffResult(
            unchanged=list(self.unchanged),
            changed=[
                ReporterChangedShot(
                    name=shot.name,
                    baseline_path=str(shot.baseline_path),
                    current_path=str(shot.current_path),
                    diff_path=str(shot.diff_path),
                    diff_percentage=shot.diff_percentage,
                    viewport=shot.viewport,
                )
                for shot in self.changed
            ],
            added=list(self.added),
            removed=list(self.removed),
        )
