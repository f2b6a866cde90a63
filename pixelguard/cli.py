"""CLI entry point for Pixelguard."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from pixelguard.capture.capture import capture_screenshots, update_baseline
from pixelguard.differ.image_diff import diff_images, has_baseline
from pixelguard.errors import PixelguardError
from pixelguard.models.config import PixelguardConfig
from pixelguard.plugins.bootstrap import init_plugins
from pixelguard.reporter.reporter import Reporter

console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, rich_tracebacks=True)],
    )


def _load_config(config: str | None, working_dir: Path) -> PixelguardConfig:
    if config:
        return PixelguardConfig.load(working_dir / config)
    return PixelguardConfig.load_or_default(working_dir)


def _fail(message: str) -> None:
    err_console.print(f"[red]{message}[/red]")
    sys.exit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Visual regression testing with pluggable storage, capture, diff and reporting."""
    setup_logging(verbose)


@cli.command()
@click.option("--update", is_flag=True, help="Update baseline with current screenshots")
@click.option("--ci", is_flag=True, help="Machine-readable output, exit code 1 on diffs")
@click.option("--filter", "name_filter", default=None, help="Only test shots containing this text")
@click.option("--config", "-c", default=None, help="Config file path")
def test(update: bool, ci: bool, name_filter: str | None, config: str | None) -> None:
    """Capture screenshots and compare them against the baseline."""
    working_dir = Path.cwd()
    try:
        cfg = _load_config(config, working_dir)
        if not cfg.shots:
            _fail("No shots configured. Add shots to pixelguard.config.json.")

        if name_filter:
            total = len(cfg.shots)
            cfg.shots = [s for s in cfg.shots if name_filter in s.name]
            if not cfg.shots:
                _fail(f"No shots match filter '{name_filter}'. {total} shots were filtered out.")
            if not ci:
                console.print(f"Filtered to {len(cfg.shots)} of {total} shots matching '{name_filter}'")

        registry = init_plugins(cfg, working_dir)

        if not ci:
            console.print(f"Capturing {len(cfg.shots)} screenshots...")
        capture = asyncio.run(capture_screenshots(cfg, working_dir, registry))
        if capture.failed:
            err_console.print(f"[yellow]Warning: {len(capture.failed)} shots failed to capture:[/yellow]")
            for failed in capture.failed:
                err_console.print(f"  - {failed.name}: {failed.error}")

        if update:
            count = update_baseline(cfg, working_dir, registry)
            if ci:
                print(json.dumps({"status": "updated", "count": count}))
            else:
                console.print(f"\n[green]Updated baseline with {count} screenshots[/green]")
            return

        if not has_baseline(cfg, working_dir):
            if ci:
                print(json.dumps({"status": "no_baseline", "captured": len(capture.captured)}))
            else:
                console.print(
                    "\nNo baseline found. This appears to be your first run.\n"
                    "Run 'pixelguard test --update' to create the baseline."
                )
            return

        if not ci:
            console.print("Comparing against baseline...")
        result = diff_images(cfg, working_dir, registry)
        reporter = Reporter(cfg, working_dir, registry)
        outcome = reporter.generate_reports(result)
        reporter.notify(result, outcome, ci_mode=ci)
    except PixelguardError as e:
        _fail(str(e))

    if ci:
        print(json.dumps({
            "status": "fail" if result.has_changes() else "pass",
            "unchanged": len(result.unchanged),
            "changed": len(result.changed),
            "added": len(result.added),
            "removed": len(result.removed),
            "report": outcome.report_url or outcome.report_path,
        }))
        if result.has_changes():
            sys.exit(1)
        return

    table = Table(title="Results Summary")
    table.add_column("Shot", style="bold")
    table.add_column("Status")
    for name in result.unchanged:
        table.add_row(name, "[green]unchanged[/green]")
    for shot in result.changed:
        table.add_row(shot.name, f"[red]changed ({shot.diff_percentage:.2f}%)[/red]")
    for name in result.added:
        table.add_row(name, "[yellow]added[/yellow]")
    for name in result.removed:
        table.add_row(name, "[yellow]removed[/yellow]")
    console.print(table)
    console.print(f"\nView report: [blue]{outcome.report_url or outcome.report_path}[/blue]")
    if result.has_changes():
        console.print("\nTo update baseline: [blue]pixelguard test --update[/blue]")


@cli.command()
@click.argument("names", nargs=-1)
@click.option("--config", "-c", default=None, help="Config file path")
def apply(names: tuple[str, ...], config: str | None) -> None:
    """Accept current screenshots as the new baseline (all, or only NAMES)."""
    working_dir = Path.cwd()
    try:
        cfg = _load_config(config, working_dir)
        registry = init_plugins(cfg, working_dir)
        count = update_baseline(cfg, working_dir, registry, list(names) or None)
    except PixelguardError as e:
        _fail(str(e))
    console.print(f"[green]Updated {count} baseline screenshot(s)[/green]")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output in JSON format")
@click.option("--config", "-c", default=None, help="Config file path")
def plugins(as_json: bool, config: str | None) -> None:
    """List configured plugins and whether they load."""
    working_dir = Path.cwd()
    try:
        cfg = _load_config(config, working_dir)
    except PixelguardError as e:
        _fail(str(e))

    if not cfg.plugins:
        if as_json:
            print("[]")
        else:
            console.print("[yellow]No plugins configured[/yellow]")
        return

    try:
        registry = init_plugins(cfg, working_dir)
    except PixelguardError as e:
        if as_json:
            print(json.dumps({"error": str(e)}, indent=2))
        else:
            console.print(f"[red]Failed to load plugins:[/red] {e}")
        sys.exit(1)

    active = registry.all_active()
    if as_json:
        print(json.dumps([
            {
                "name": p.name,
                "category": p.category.value,
                "hooks": list(p.manifest.hooks),
                "version": p.manifest.version,
                "status": "loaded",
            }
            for p in active
        ], indent=2))
        return

    table = Table(title=f"Loaded plugins ({len(active)})")
    table.add_column("Name", style="bold")
    table.add_column("Category")
    table.add_column("Version")
    table.add_column("Hooks")
    for p in active:
        table.add_row(p.name, p.category.value, p.manifest.version, ", ".join(p.manifest.hooks))
    console.print(table)


if __name__ == "__main__":
    cli()
