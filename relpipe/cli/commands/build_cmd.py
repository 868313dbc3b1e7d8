"""Build command - re-run a single platform job."""

from __future__ import annotations

from pathlib import Path

import typer

from relpipe.cli.commands._helpers import (
    CONFIG_OPTION,
    DRY_RUN_OPTION,
    EVENT_OPTION,
    PROJECT_DIR_OPTION,
    exit_on_error,
    exit_user_error,
    load_event,
)
from relpipe.cli.context import build_context, build_orchestrator
from relpipe.output.console import Style
from relpipe.services.model import ReleaseAsset


def build(
    target: str = typer.Argument(..., help="Target id (see `relpipe targets`)"),
    event: Path = EVENT_OPTION,
    config: Path = CONFIG_OPTION,
    project_dir: Path = PROJECT_DIR_OPTION,
    no_upload: bool = typer.Option(False, "--no-upload", help="Build only; skip the upload"),
    dry_run: bool = DRY_RUN_OPTION,
) -> None:
    """Build (and upload) one target for a release."""
    ctx = build_context(config_path=config, project_dir=project_dir)
    platform_target = ctx.config.target(target)
    if platform_target is None:
        available = ", ".join(t.id for t in ctx.config.targets)
        ctx.console.print(f"Available: {available}", Style.DIM)
        exit_user_error(f"unknown target: {target}", ctx.console)

    release = load_event(event, ctx.console)
    orchestrator = build_orchestrator(ctx, dry_run=dry_run)
    value = exit_on_error(
        orchestrator.run_build_job(release, platform_target, upload=not no_upload),
        ctx.console,
    )
    if isinstance(value, ReleaseAsset):
        ctx.console.success(f"uploaded {value.name} to {release.tag}")
    else:
        ctx.console.success(str(value.path))
