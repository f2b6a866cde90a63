"""JSON report output."""

from __future__ import annotations

import json
import time
from pathlib import Path

from pixelguard.models.config import PixelguardConfig
from pixelguard.models.diff_result import DiffResult


def generate_json_report(
    diff_result: DiffResult,
    config: PixelguardConfig,
    output_path: Path,
) -> None:
    """Write a machine-readable JSON report."""
    report = {
        "generated_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "status": "fail" if diff_result.has_changes() else "pass",
        "threshold": config.threshold,
        "summary": {
            "unchanged": len(diff_result.unchanged),
            "changed": len(diff_result.changed),
            "added": len(diff_result.added),
            "removed": len(diff_result.removed),
        },
        **diff_result.model_dump(mode="json"),
    }

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(report, f, indent=2, default=str)
