"""Configuration models for Pixelguard."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from pixelguard.errors import ConfigError

CONFIG_FILENAME = "pixelguard.config.json"
DEFAULT_VIEWPORT_NAME = "default"


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Viewport(CamelModel):
    width: int = 1280
    height: int = 720


class ViewportConfig(CamelModel):
    name: str
    width: int = 1280
    height: int = 720


class Shot(CamelModel):
    name: str
    path: str
    wait_for: Optional[str] = None
    delay: Optional[int] = None  # milliseconds


class PluginEntry(CamelModel):
    """A plugin declared in the config, optionally with inline options."""

    name: str
    options: Optional[dict[str, Any]] = None


class PixelguardConfig(CamelModel):
    # Project
    source: str = ""
    base_url: str = ""
    include: list[str] = Field(default_factory=lambda: ["**/*"])
    exclude: list[str] = Field(default_factory=list)

    # Capture
    viewport: Viewport = Field(default_factory=Viewport)
    viewports: list[ViewportConfig] = Field(default_factory=list)
    shots: list[Shot] = Field(default_factory=list)
    concurrency: int = Field(default=4, ge=1)

    # Comparison
    threshold: float = Field(default=0.01, ge=0.0, le=1.0)
    output_dir: str = ".pixelguard"

    # Plugins
    plugins: list[PluginEntry] = Field(default_factory=list)
    plugin_options: dict[str, dict[str, Any]] = Field(default_factory=dict)
    plugin_timeout: float = Field(default=300.0, gt=0)  # seconds per hook call

    @field_validator("plugins", mode="before")
    @classmethod
    def normalize_plugin_entries(cls, v: Any) -> Any:
        # Plain strings are shorthand for an entry without inline options
        if isinstance(v, list):
            return [{"name": item} if isinstance(item, str) else item for item in v]
        return v

    def effective_viewports(self) -> list[ViewportConfig]:
        """Configured viewports, or the single default viewport."""
        if self.viewports:
            return list(self.viewports)
        return [
            ViewportConfig(
                name=DEFAULT_VIEWPORT_NAME,
                width=self.viewport.width,
                height=self.viewport.height,
            )
        ]

    def output_path(self, working_dir: str | Path) -> Path:
        return Path(working_dir) / self.output_dir

    @staticmethod
    def config_path(directory: str | Path) -> Path:
        return Path(directory) / CONFIG_FILENAME

    @classmethod
    def load(cls, path: str | Path) -> "PixelguardConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(
                f"Could not read config file at '{path}'. "
                "Create a pixelguard.config.json first."
            )
        try:
            with open(path) as f:
                data = json.load(f)
            return cls.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            raise ConfigError(f"Invalid config file '{path}': {e}") from e

    @classmethod
    def load_or_default(cls, directory: str | Path) -> "PixelguardConfig":
        """Load the config from a directory, or defaults when it has none."""
        path = cls.config_path(directory)
        if path.exists():
            return cls.load(path)
        return cls()

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(by_alias=True, exclude_none=True), f, indent=2)
