"""Image diffing — pixel comparison of current screenshots against the baseline.

Supports a differ plugin as a drop-in replacement for the built-in
algorithm (e.g. SSIM).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
from PIL import Image, UnidentifiedImageError

from pixelguard.errors import ComparisonError
from pixelguard.models.config import PixelguardConfig
from pixelguard.models.diff_result import ChangedShot, DiffResult, parse_shot_name
from pixelguard.models.plugin import DifferInput, DifferOutput, LoadedPlugin, PluginCategory
from pixelguard.plugins.executor import invoke
from pixelguard.plugins.registry import PluginRegistry

logger = logging.getLogger(__name__)

# sqrt(4 * 255^2): distance between opposite corners of the RGBA cube
MAX_DISTANCE = 510.0
# Per-pixel anti-aliasing tolerance, as a fraction of the shot threshold
PIXEL_TOLERANCE_FACTOR = 0.1
SIZE_MISMATCH_COLOR = (255, 0, 0, 255)
HIGHLIGHT_DIM = 0.3
CONTEXT_DIM = 0.5


def list_shots(directory: Path) -> set[str]:
    """Names (file stems) of the PNG screenshots in a directory."""
    if not directory.is_dir():
        return set()
    return {p.stem for p in directory.iterdir() if p.is_file() and p.suffix == ".png"}


def has_baseline(config: PixelguardConfig, working_dir: Path) -> bool:
    """True if at least one baseline screenshot exists."""
    return bool(list_shots(config.output_path(working_dir) / "baseline"))


def exceeds_threshold(diff_percentage: float, threshold: float) -> bool:
    return diff_percentage > threshold


def diff_images(
    config: PixelguardConfig,
    working_dir: Path,
    registry: Optional[PluginRegistry] = None,
) -> DiffResult:
    """Compare current screenshots against the baseline.

    Shots present only in current are ``added``, only in baseline
    ``removed``; shots present in both are compared and classified as
    ``changed`` or ``unchanged``. A failure to load either image aborts the
    whole pass with ComparisonError.
    """
    working_dir = Path(working_dir)
    output_dir = config.output_path(working_dir)
    baseline_dir = output_dir / "baseline"
    current_dir = output_dir / "current"
    diff_dir = output_dir / "diff"
    diff_dir.mkdir(parents=True, exist_ok=True)

    current_shots = list_shots(current_dir)
    baseline_shots = list_shots(baseline_dir)

    result = DiffResult(
        added=sorted(current_shots - baseline_shots),
        removed=sorted(baseline_shots - current_shots),
    )

    differ = registry.get(PluginCategory.DIFFER) if registry else None
    if differ:
        logger.debug("Using differ plugin: %s", differ.name)

    for name in sorted(current_shots & baseline_shots):
        baseline_path = baseline_dir / f"{name}.png"
        current_path = current_dir / f"{name}.png"
        diff_path = diff_dir / f"{name}.png"
        logger.debug("Comparing: %s", name)

        if differ:
            diff_percentage = compare_with_plugin(
                differ, baseline_path, current_path, diff_path,
                config.threshold, working_dir, config.plugin_timeout,
            )
        else:
            diff_percentage = compare_images(
                baseline_path, current_path, diff_path, config.threshold
            )

        if exceeds_threshold(diff_percentage, config.threshold):
            logger.info("%s: %.2f%% different", name, diff_percentage)
            _, viewport = parse_shot_name(name)
            result.changed.append(ChangedShot(
                name=name,
                baseline_path=baseline_path,
                current_path=current_path,
                diff_path=diff_path,
                diff_percentage=diff_percentage,
                viewport=viewport,
            ))
        else:
            logger.debug("%s: unchanged", name)
            result.unchanged.append(name)
            # Stale diff from an earlier run
            diff_path.unlink(missing_ok=True)

    result.sort()
    logger.info(
        "Diff complete: %d unchanged, %d changed, %d added, %d removed",
        len(result.unchanged), len(result.changed), len(result.added), len(result.removed),
    )
    return result


def compare_with_plugin(
    plugin: LoadedPlugin,
    baseline_path: Path,
    current_path: Path,
    diff_path: Path,
    threshold: float,
    working_dir: Path,
    timeout: Optional[float] = None,
) -> float:
    """Delegate one comparison to the differ plugin's ``compare`` hook."""
    request = DifferInput(
        baseline_path=str(baseline_path),
        current_path=str(current_path),
        diff_path=str(diff_path),
        threshold=threshold,
    )
    output: DifferOutput = invoke(plugin, "compare", request, working_dir, timeout)
    return output.diff_percentage


def _load_rgba(path: Path) -> np.ndarray:
    try:
        with Image.open(path) as img:
            return np.array(img.convert("RGBA"), dtype=np.uint8)
    except (OSError, UnidentifiedImageError) as e:
        raise ComparisonError(path, f"Failed to load image '{path}': {e}") from e


def differing_mask(baseline: np.ndarray, current: np.ndarray, threshold: float) -> np.ndarray:
    """Boolean mask of pixels whose normalized RGBA distance exceeds the tolerance."""
    delta = baseline.astype(np.float64) - current.astype(np.float64)
    distance = np.sqrt(np.sum(delta * delta, axis=-1)) / MAX_DISTANCE
    return distance > threshold * PIXEL_TOLERANCE_FACTOR


def pixels_differ(a: Sequence[int], b: Sequence[int], threshold: float) -> bool:
    """Whether two RGBA pixels differ beyond the anti-aliasing tolerance."""
    if tuple(a) == tuple(b):
        return False
    pair = differing_mask(
        np.array([a], dtype=np.uint8), np.array([b], dtype=np.uint8), threshold
    )
    return bool(pair[0])


def render_diff(current: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """Highlight differing pixels in red over a dimmed copy of the current image."""
    diff = current.astype(np.float64)
    diff[..., :3] *= CONTEXT_DIM
    highlighted = current[mask].astype(np.float64)
    highlighted[:, 0] = 255
    highlighted[:, 1:3] *= HIGHLIGHT_DIM
    highlighted[:, 3] = 255
    diff[mask] = highlighted
    return diff.astype(np.uint8)


def compare_images(
    baseline_path: Path,
    current_path: Path,
    diff_path: Path,
    threshold: float,
) -> float:
    """Compare two images and write a diff image; returns the percentage of differing pixels."""
    baseline = _load_rgba(baseline_path)
    current = _load_rgba(current_path)

    if baseline.shape != current.shape:
        height = max(baseline.shape[0], current.shape[0])
        width = max(baseline.shape[1], current.shape[1])
        logger.debug(
            "Size mismatch for %s: %dx%d vs %dx%d", current_path.name,
            baseline.shape[1], baseline.shape[0], current.shape[1], current.shape[0],
        )
        Image.new("RGBA", (width, height), SIZE_MISMATCH_COLOR).save(diff_path)
        return 100.0

    total = baseline.shape[0] * baseline.shape[1]
    if total == 0:
        return 0.0

    mask = differing_mask(baseline, current, threshold)
    diff_count = int(mask.sum())

    if diff_count > 0:
        try:
            Image.fromarray(render_diff(current, mask)).save(diff_path)
        except OSError as e:
            raise ComparisonError(diff_path, f"Failed to save diff image '{diff_path}': {e}") from e

    return diff_count / total * 100.0
