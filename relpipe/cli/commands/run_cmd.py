"""Run command - the full pipeline for one release event."""

from __future__ import annotations

from pathlib import Path

from relpipe.cli.commands._helpers import (
    CONFIG_OPTION,
    DRY_RUN_OPTION,
    EVENT_OPTION,
    PROJECT_DIR_OPTION,
    exit_with_code,
    load_event,
)
from relpipe.cli.context import build_context, build_orchestrator
from relpipe.output.errors import print_report, report_exit_code


def run(
    event: Path = EVENT_OPTION,
    config: Path = CONFIG_OPTION,
    project_dir: Path = PROJECT_DIR_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
) -> None:
    """Build every target, upload the assets and publish the package."""
    ctx = build_context(config_path=config, project_dir=project_dir)
    release = load_event(event, ctx.console)

    report = build_orchestrator(ctx, dry_run=dry_run).handle(release)
    print_report(report, ctx.console)
    exit_with_code(report_exit_code(report))
