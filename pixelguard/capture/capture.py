"""Screenshot capture and baseline updates.

Capture goes through a registered capture plugin when there is one, and
through Playwright otherwise.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from pixelguard.errors import StorageError
from pixelguard.models.config import DEFAULT_VIEWPORT_NAME, PixelguardConfig, Shot, ViewportConfig
from pixelguard.models.diff_result import VIEWPORT_SEPARATOR
from pixelguard.models.plugin import (
    CaptureInput,
    CaptureOutput,
    CaptureShot,
    CaptureViewport,
    CapturedShot,
    FailedShot,
    LoadedPlugin,
    PluginCategory,
)
from pixelguard.plugins.executor import invoke
from pixelguard.plugins.registry import PluginRegistry
from pixelguard.storage.storage import Storage

logger = logging.getLogger(__name__)

NAVIGATION_TIMEOUT_MS = 30000
WAIT_FOR_TIMEOUT_MS = 10000


def shot_filename(shot_name: str, viewport_name: str) -> str:
    """``{shot}.png`` for the default viewport, ``{shot}@{viewport}.png`` otherwise."""
    return f"{display_name(shot_name, viewport_name)}.png"


def display_name(shot_name: str, viewport_name: str) -> str:
    if viewport_name == DEFAULT_VIEWPORT_NAME:
        return shot_name
    return f"{shot_name}{VIEWPORT_SEPARATOR}{viewport_name}"


async def capture_screenshots(
    config: PixelguardConfig,
    working_dir: Path,
    registry: Optional[PluginRegistry] = None,
) -> CaptureOutput:
    """Capture every configured shot at every effective viewport into ``current/``."""
    working_dir = Path(working_dir)
    output_dir = config.output_path(working_dir) / "current"
    output_dir.mkdir(parents=True, exist_ok=True)

    if not config.shots:
        return CaptureOutput()

    plugin = registry.get(PluginCategory.CAPTURE) if registry else None
    if plugin:
        logger.info("Capturing with plugin: %s", plugin.name)
        return await asyncio.to_thread(
            _capture_with_plugin, plugin, config, output_dir, working_dir
        )
    return await _capture_with_playwright(config, output_dir)


def _capture_with_plugin(
    plugin: LoadedPlugin,
    config: PixelguardConfig,
    output_dir: Path,
    working_dir: Path,
) -> CaptureOutput:
    """One ``capture`` hook call per viewport, results merged."""
    result = CaptureOutput()
    for viewport in config.effective_viewports():
        request = CaptureInput(
            shots=[
                CaptureShot(
                    name=display_name(shot.name, viewport.name),
                    path=shot.path,
                    wait_for=shot.wait_for,
                    delay=shot.delay,
                )
                for shot in config.shots
            ],
            base_url=config.base_url,
            viewport=CaptureViewport(width=viewport.width, height=viewport.height),
            output_dir=str(output_dir),
        )
        output: CaptureOutput = invoke(
            plugin, "capture", request, working_dir, config.plugin_timeout
        )
        result.captured.extend(output.captured)
        result.failed.extend(output.failed)
    return result


async def _capture_with_playwright(config: PixelguardConfig, output_dir: Path) -> CaptureOutput:
    from playwright.async_api import async_playwright

    result = CaptureOutput()
    jobs = [(shot, viewport) for shot in config.shots for viewport in config.effective_viewports()]
    semaphore = asyncio.Semaphore(config.concurrency)

    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=True)
        try:
            async def run(shot: Shot, viewport: ViewportConfig) -> None:
                async with semaphore:
                    await _capture_one(browser, config.base_url, shot, viewport, output_dir, result)

            await asyncio.gather(*(run(shot, viewport) for shot, viewport in jobs))
        finally:
            await browser.close()

    logger.info("Captured %d screenshot(s), %d failed", len(result.captured), len(result.failed))
    return result


async def _capture_one(
    browser,
    base_url: str,
    shot: Shot,
    viewport: ViewportConfig,
    output_dir: Path,
    result: CaptureOutput,
) -> None:
    name = display_name(shot.name, viewport.name)
    path = output_dir / shot_filename(shot.name, viewport.name)
    context = await browser.new_context(
        viewport={"width": viewport.width, "height": viewport.height},
        device_scale_factor=1,
    )
    page = await context.new_page()
    try:
        logger.debug("Capturing: %s", name)
        await page.goto(base_url + shot.path, wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS)
        if shot.wait_for:
            await page.wait_for_selector(shot.wait_for, timeout=WAIT_FOR_TIMEOUT_MS)
        if shot.delay:
            await page.wait_for_timeout(shot.delay)
        await page.screenshot(path=str(path), full_page=False)
        result.captured.append(CapturedShot(name=name, path=str(path)))
    except Exception as e:
        logger.warning("Failed to capture %s: %s", name, e)
        result.failed.append(FailedShot(name=name, error=str(e)))
    finally:
        await page.close()
        await context.close()


def _matches_filter(name: str, names: list[str]) -> bool:
    # "button" also matches "button@mobile"
    return any(name == f or name.startswith(f"{f}{VIEWPORT_SEPARATOR}") for f in names)


def update_baseline(
    config: PixelguardConfig,
    working_dir: Path,
    registry: Optional[PluginRegistry] = None,
    names: Optional[list[str]] = None,
) -> int:
    """Promote current screenshots to the baseline; returns how many were copied."""
    working_dir = Path(working_dir)
    output_dir = config.output_path(working_dir)
    current_dir = output_dir / "current"
    if not current_dir.is_dir():
        raise StorageError(
            f"No current screenshots found in '{current_dir}'. Capture screenshots first."
        )

    storage = Storage(output_dir, working_dir, registry, config.plugin_timeout)
    if not storage.is_remote:
        (output_dir / "baseline").mkdir(parents=True, exist_ok=True)

    updated = 0
    for path in sorted(current_dir.glob("*.png")):
        if names is not None and not _matches_filter(path.stem, names):
            logger.debug("Skipping %s (not in filter)", path.stem)
            continue
        storage.copy(f"current/{path.name}", f"baseline/{path.name}")
        logger.debug("Updated baseline: %s", path.stem)
        updated += 1

    if names is not None:
        logger.info("Updated %d baseline screenshot(s) matching: %s", updated, ", ".join(names))
    else:
        logger.info("Baseline updated with %d current screenshot(s)", updated)
    return updated
