"""Toolchain installation and the optional dependency cache."""

from __future__ import annotations

import hashlib
import shutil
from collections.abc import Mapping
from pathlib import Path

from relpipe.core.config import ToolchainConfig
from relpipe.core.result import Err, Ok, Result
from relpipe.core.secrets import child_environ
from relpipe.core.timeouts import TOOLCHAIN_TIMEOUT_SECONDS
from relpipe.output.console import ConsoleProtocol, Style
from relpipe.platform.process import run as run_process
from relpipe.platform.process import tail
from relpipe.services.errors import PipelineError
from relpipe.services.model import PlatformTarget

_RUSTUP_HINT = "Install rustup: https://rustup.rs/"


class ToolchainInstaller:
    """Installs the configured Rust toolchain for one target via rustup."""

    def __init__(self, config: ToolchainConfig, *, env: Mapping[str, str] | None = None) -> None:
        self._config = config
        self._env = dict(env) if env is not None else child_environ()

    def ensure(
        self,
        target: PlatformTarget,
        *,
        project_dir: Path,
        console: ConsoleProtocol,
        dry_run: bool = False,
    ) -> Result[None, PipelineError]:
        if not self._config.install:
            if dry_run or shutil.which("cargo") is not None:
                return Ok(None)
            return Err(
                PipelineError(kind="toolchain_missing", message="cargo: missing", hint=_RUSTUP_HINT)
            )

        if not dry_run and shutil.which("rustup") is None:
            return Err(
                PipelineError(
                    kind="toolchain_missing", message="rustup: missing", hint=_RUSTUP_HINT
                )
            )

        commands = [
            [
                "rustup",
                "toolchain",
                "install",
                self._config.channel,
                "--profile",
                self._config.profile,
                "--target",
                target.triple,
                "--no-self-update",
            ]
        ]
        if self._config.override:
            commands.append(["rustup", "override", "set", self._config.channel])

        for cmd in commands:
            console.print(" ".join(cmd), Style.DIM)
            if dry_run:
                continue
            result = run_process(
                cmd, cwd=project_dir, env=dict(self._env), timeout=TOOLCHAIN_TIMEOUT_SECONDS
            )
            if isinstance(result, Err):
                return Err(
                    PipelineError(
                        kind="toolchain_install_failed",
                        message=f"{' '.join(cmd[:3])} failed (exit {result.error.returncode})",
                        hint=tail(result.error.stderr, 5) or None,
                    )
                )
        return Ok(None)


class DependencyCache:
    """Per-lockfile dependency home shared between runs.

    The key covers the project identity and the exact lockfile, so a cache
    entry only ever holds the dependency set the lockfile pins. It only speeds
    builds up; a missing or cold entry never changes the output.
    """

    def __init__(self, root: Path, *, project: str) -> None:
        self._root = root
        self._project = project

    def key(self, project_dir: Path) -> str:
        h = hashlib.sha256(self._project.encode("utf-8"))
        h.update(b"\0")
        lockfile = project_dir / "Cargo.lock"
        if lockfile.is_file():
            h.update(lockfile.read_bytes())
        return h.hexdigest()[:16]

    def env(self, project_dir: Path) -> dict[str, str]:
        path = self._root / f"{self._project}-{self.key(project_dir)}"
        path.mkdir(parents=True, exist_ok=True)
        return {"CARGO_HOME": str(path)}
