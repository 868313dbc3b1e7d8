"""Publish command - re-run the registry job."""

from __future__ import annotations

from pathlib import Path

from relpipe.cli.commands._helpers import (
    CONFIG_OPTION,
    DRY_RUN_OPTION,
    EVENT_OPTION,
    PROJECT_DIR_OPTION,
    exit_on_error,
    load_event,
)
from relpipe.cli.context import build_context, build_orchestrator


def publish(
    event: Path = EVENT_OPTION,
    config: Path = CONFIG_OPTION,
    project_dir: Path = PROJECT_DIR_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
) -> None:
    """Publish the package version in Cargo.toml to the registry."""
    ctx = build_context(config_path=config, project_dir=project_dir)
    release = load_event(event, ctx.console)

    package = exit_on_error(
        build_orchestrator(ctx, dry_run=dry_run).run_registry_job(release), ctx.console
    )
    ctx.console.success(f"published {package}")
