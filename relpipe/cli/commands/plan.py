"""Plan command - show the job graph an event would run."""

from __future__ import annotations

from pathlib import Path

from relpipe.cli.commands._helpers import (
    CONFIG_OPTION,
    EVENT_OPTION,
    PROJECT_DIR_OPTION,
    load_event,
)
from relpipe.cli.context import build_context, build_orchestrator
from relpipe.output.console import Style


def plan(
    event: Path = EVENT_OPTION,
    config: Path = CONFIG_OPTION,
    project_dir: Path = PROJECT_DIR_OPTION,
) -> None:
    """Print the jobs (and their prerequisites) without running anything."""
    ctx = build_context(config_path=config, project_dir=project_dir)
    release = load_event(event, ctx.console)
    orchestrator = build_orchestrator(ctx, dry_run=True)

    if not orchestrator.should_run(release):
        ctx.console.info(f"event action {release.action!r} does not trigger the pipeline")
        return

    graph = orchestrator.plan(release)
    ctx.console.header(f"Release {release.tag}")
    for name in graph.order:
        needs = graph.needs(name)
        suffix = f"  (needs {', '.join(needs)})" if needs else ""
        ctx.console.print(f"{name}{suffix}")
    ctx.console.print(f"gate: {ctx.config.pipeline.registry_gate}", Style.DIM)
