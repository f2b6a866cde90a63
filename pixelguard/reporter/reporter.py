"""Report generation and notification orchestration."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pixelguard.models.config import PixelguardConfig
from pixelguard.models.diff_result import DiffResult
from pixelguard.models.plugin import NotifierInput, ReporterConfig, ReporterInput, ReporterOutput
from pixelguard.plugins.executor import invoke
from pixelguard.plugins.registry import PluginRegistry
from pixelguard.reporter.json_report import generate_json_report

logger = logging.getLogger(__name__)

JSON_REPORT_NAME = "report.json"


@dataclass
class ReportOutcome:
    report_path: Optional[str] = None
    report_url: Optional[str] = None


class Reporter:
    """Writes the built-in JSON report, then runs reporter and notifier plugins."""

    def __init__(
        self,
        config: PixelguardConfig,
        working_dir: Path,
        registry: Optional[PluginRegistry] = None,
    ):
        self.config = config
        self.working_dir = Path(working_dir)
        self.registry = registry or PluginRegistry()

    @property
    def output_dir(self) -> Path:
        return self.config.output_path(self.working_dir)

    def generate_reports(self, diff_result: DiffResult) -> ReportOutcome:
        """Generate every report. Returns the location to point users at.

        The first reporter plugin that returns a path or URL wins over the
        built-in JSON report.
        """
        path = self.output_dir / JSON_REPORT_NAME
        logger.debug("Generating JSON report...")
        generate_json_report(diff_result, self.config, path)
        logger.info("JSON report: %s", path)
        outcome = ReportOutcome(report_path=str(path))

        request = ReporterInput(
            result=diff_result.to_payload(),
            config=ReporterConfig(
                source=self.config.source,
                base_url=self.config.base_url,
                threshold=self.config.threshold,
            ),
            output_dir=str(self.output_dir),
        )
        plugin_outcome: Optional[ReportOutcome] = None
        for plugin in self.registry.reporters():
            logger.debug("Running reporter plugin: %s", plugin.name)
            output: ReporterOutput = invoke(
                plugin, "generate", request, self.working_dir, self.config.plugin_timeout
            )
            if plugin_outcome is None and (output.report_path or output.report_url):
                plugin_outcome = ReportOutcome(output.report_path, output.report_url)
            logger.info("Reporter %s: %s", plugin.name, output.report_path or output.report_url or "done")

        return plugin_outcome or outcome

    def notify(
        self,
        diff_result: DiffResult,
        outcome: Optional[ReportOutcome] = None,
        ci_mode: bool = False,
    ) -> int:
        """Call every notifier plugin; returns how many ran."""
        notifiers = self.registry.notifiers()
        if not notifiers:
            return 0
        outcome = outcome or ReportOutcome()
        request = NotifierInput(
            result=diff_result.to_payload(),
            report_path=outcome.report_path,
            report_url=outcome.report_url,
            ci_mode=ci_mode,
        )
        for plugin in notifiers:
            logger.debug("Running notifier plugin: %s", plugin.name)
            invoke(plugin, "notify", request, self.working_dir, self.config.plugin_timeout)
        return len(notifiers)
