"""Storage abstraction for baseline screenshots.

Local filesystem by default; a registered storage plugin (S3, R2, ...)
takes over every operation when present.
"""

from __future__ import annotations

import base64
import binascii
import logging
import shutil
from pathlib import Path
from typing import Optional

from pixelguard.errors import StorageError
from pixelguard.models.plugin import LoadedPlugin, PluginCategory, StorageInput, StorageOutput
from pixelguard.plugins.executor import invoke
from pixelguard.plugins.registry import PluginRegistry

logger = logging.getLogger(__name__)


class Storage:
    """Read/write access to files under an output directory."""

    def __init__(
        self,
        base_dir: Path,
        working_dir: Optional[Path] = None,
        registry: Optional[PluginRegistry] = None,
        timeout: Optional[float] = None,
    ):
        self.base_dir = Path(base_dir)
        self.working_dir = Path(working_dir) if working_dir else self.base_dir
        self.plugin: Optional[LoadedPlugin] = (
            registry.get(PluginCategory.STORAGE) if registry else None
        )
        self.timeout = timeout

    @property
    def is_remote(self) -> bool:
        return self.plugin is not None

    def read(self, relative_path: str) -> bytes:
        if self.plugin:
            return self._read_plugin(relative_path)
        path = self.base_dir / relative_path
        logger.debug("Reading local file: %s", path)
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read file: {path}: {e}") from e

    def write(self, relative_path: str, data: bytes) -> None:
        if self.plugin:
            logger.debug("Writing via plugin: %s", relative_path)
            request = StorageInput(path=relative_path, data=base64.b64encode(data).decode("ascii"))
            self._call("write", request)
            return
        path = self.base_dir / relative_path
        logger.debug("Writing local file: %s", path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to write file: {path}: {e}") from e

    def exists(self, relative_path: str) -> bool:
        if self.plugin:
            output = self._call("exists", StorageInput(path=relative_path))
            return bool(output.exists)
        return (self.base_dir / relative_path).exists()

    def list(self, relative_path: str = "") -> list[str]:
        """File names directly inside a directory, sorted."""
        if self.plugin:
            output = self._call("list", StorageInput(path=relative_path))
            return sorted(output.files or [])
        path = self.base_dir / relative_path
        if not path.is_dir():
            return []
        return sorted(p.name for p in path.iterdir() if p.is_file())

    def delete(self, relative_path: str) -> None:
        if self.plugin:
            logger.debug("Deleting via plugin: %s", relative_path)
            self._call("delete", StorageInput(path=relative_path))
            return
        path = self.base_dir / relative_path
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete file: {path}: {e}") from e

    def copy(self, source: str, destination: str) -> None:
        """Copy a file within storage; plugins get a read followed by a write."""
        if self.plugin:
            self.write(destination, self.read(source))
            return
        src = self.base_dir / source
        dst = self.base_dir / destination
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(src, dst)
        except OSError as e:
            raise StorageError(f"Failed to copy {src} to {dst}: {e}") from e

    def _read_plugin(self, relative_path: str) -> bytes:
        logger.debug("Reading via plugin: %s", relative_path)
        output = self._call("read", StorageInput(path=relative_path))
        if output.data is None:
            raise StorageError(
                f"Storage plugin '{self.plugin.name}' did not return data for '{relative_path}'"
            )
        try:
            return base64.b64decode(output.data, validate=True)
        except binascii.Error as e:
            raise StorageError(
                f"Storage plugin '{self.plugin.name}' returned invalid base64 for '{relative_path}'"
            ) from e

    def _call(self, hook: str, request: StorageInput) -> Optional[StorageOutput]:
        return invoke(self.plugin, hook, request, self.working_dir, self.timeout)
