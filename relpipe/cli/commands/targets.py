"""Targets command - list configured platform targets."""

from __future__ import annotations

from pathlib import Path

from relpipe.cli.commands._helpers import CONFIG_OPTION, PROJECT_DIR_OPTION
from relpipe.cli.context import build_context
from relpipe.platform.targets import detect_host


def targets(
    config: Path = CONFIG_OPTION,
    project_dir: Path = PROJECT_DIR_OPTION,
) -> None:
    """List platform targets and the asset each one produces."""
    ctx = build_context(config_path=config, project_dir=project_dir)
    host_os, host_arch = detect_host()

    rows = [
        (
            t.id,
            f"{t.os}/{t.arch}" + (" (host)" if (t.os, t.arch) == (host_os, host_arch) else ""),
            t.triple,
            t.asset_name,
            t.content_type,
        )
        for t in ctx.config.targets
    ]
    ctx.console.table(
        f"Targets for {ctx.config.project.binary}",
        ("id", "platform", "triple", "asset", "content type"),
        rows,
    )
