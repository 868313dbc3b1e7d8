"""Source checkout for one job.

Each job clones the released tag into its own directory, so jobs never share a
working tree.
"""

from __future__ import annotations

import shutil
from collections.abc import Mapping
from pathlib import Path

from relpipe.core.result import Err, Ok, Result
from relpipe.core.secrets import child_environ
from relpipe.core.timeouts import CHECKOUT_TIMEOUT_SECONDS
from relpipe.output.console import ConsoleProtocol, Style
from relpipe.platform.process import run as run_process
from relpipe.platform.process import tail
from relpipe.services.errors import PipelineError
from relpipe.services.model import ReleaseEvent


class SourceCheckout:
    def __init__(
        self,
        *,
        clone_url: str | None = None,
        local_dir: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        # Overrides the repository announced by the event (mirrors, local paths).
        self._clone_url = clone_url
        # Stands in for the checkout in dry-run mode, so later steps can read it.
        self._local_dir = local_dir
        self._env = dict(env) if env is not None else child_environ()

    def resolve_url(self, event: ReleaseEvent) -> str | None:
        return self._clone_url or event.clone_url

    def checkout(
        self,
        event: ReleaseEvent,
        dest: Path,
        *,
        console: ConsoleProtocol,
        dry_run: bool = False,
    ) -> Result[Path, PipelineError]:
        """Shallow-clone ``event.tag`` into ``dest`` (replacing any previous copy)."""
        url = self.resolve_url(event)
        if url is None:
            return Err(
                PipelineError(
                    kind="checkout_failed",
                    message="no clone URL for the released repository",
                    hint="Set project.clone_url in relpipe.toml",
                )
            )

        cmd = [
            "git",
            "-c",
            "advice.detachedHead=false",
            "clone",
            "--depth",
            "1",
            "--branch",
            event.tag,
            url,
            str(dest),
        ]
        console.print(" ".join(cmd), Style.DIM)
        if dry_run:
            return Ok(self._local_dir or dest)

        if dest.exists():
            shutil.rmtree(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)

        result = run_process(
            cmd, cwd=dest.parent, env=dict(self._env), timeout=CHECKOUT_TIMEOUT_SECONDS
        )
        if isinstance(result, Err):
            return Err(
                PipelineError(
                    kind="checkout_failed",
                    message=f"git clone of {event.tag} failed (exit {result.error.returncode})",
                    hint=tail(result.error.stderr, 5) or None,
                )
            )
        return Ok(dest)
