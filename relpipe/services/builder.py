"""Artifact builder: one release-mode binary per platform target.

The build is always ``--release --locked --verbose``: optimized, pinned to the
lockfile, with full diagnostics. The complete output lands in
``<job_dir>/build.log`` whatever the outcome; on failure its tail is echoed.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from relpipe.core.config import BuildConfig
from relpipe.core.result import Err, Ok, Result
from relpipe.core.secrets import child_environ
from relpipe.core.timeouts import BUILD_TIMEOUT_SECONDS
from relpipe.output.console import ConsoleProtocol, Style
from relpipe.platform.process import ProcessError, run_logged, tail
from relpipe.platform.targets import Os, detect_host
from relpipe.services.errors import PipelineError
from relpipe.services.model import BuildArtifact, PlatformTarget
from relpipe.services.toolchain import DependencyCache

BUILD_LOG_NAME = "build.log"

_LOCK_MISMATCH_MARKERS = (
    "needs to be updated but --locked was passed",
    "cannot update the lock file",
    "cannot create the lock file",
)
_MISSING_TARGET_MARKERS = (
    "target may not be installed",
    "can't find crate for `std`",
    "toolchain is not installed",
)


def artifact_path(project_dir: Path, target: PlatformTarget, binary: str) -> Path:
    """Where cargo leaves the release binary for ``target``."""
    return project_dir / "target" / target.triple / "release" / target.os.exe_name(binary)


def host_can_build(target: PlatformTarget, host_os: Os | None) -> bool:
    """Whether a toolchain on ``host_os`` can link binaries for ``target``.

    Apple targets need the macOS SDK and MSVC targets need the Windows linker;
    gnu and musl targets cross-build from any host with the rustup target.
    """
    if host_os is None or host_os == target.os:
        return True
    if target.os == Os.MACOS:
        return False
    return not target.triple.endswith("-msvc")


def build_command(target: PlatformTarget, extra_args: tuple[str, ...] = ()) -> list[str]:
    return [
        "cargo",
        "build",
        "--release",
        "--locked",
        "--verbose",
        "--target",
        target.triple,
        *extra_args,
    ]


class ArtifactBuilder:
    def __init__(
        self,
        *,
        binary: str,
        config: BuildConfig,
        cache: DependencyCache | None = None,
        env: Mapping[str, str] | None = None,
        host_os: Os | None = None,
    ) -> None:
        self._binary = binary
        self._config = config
        self._cache = cache
        self._env = dict(env) if env is not None else child_environ()
        self._host_os = host_os if host_os is not None else detect_host()[0]

    def check_host(self, target: PlatformTarget) -> Result[None, PipelineError]:
        if host_can_build(target, self._host_os):
            return Ok(None)
        return Err(
            PipelineError(
                kind="host_unsupported",
                message=f"{target.triple} cannot be built on a {self._host_os} host",
                hint=f"Run `relpipe build {target.id}` on a {target.os} host",
            )
        )

    def build(
        self,
        target: PlatformTarget,
        *,
        project_dir: Path,
        job_dir: Path,
        console: ConsoleProtocol,
        dry_run: bool = False,
    ) -> Result[BuildArtifact, PipelineError]:
        """Compile ``project_dir`` for ``target``.

        Returns:
            Ok(BuildArtifact) pointing at the compiled binary,
            Err(PipelineError) with kind host_unsupported, lock_mismatch,
            toolchain_missing, compile_failed or output_missing.
        """
        host = self.check_host(target)
        if isinstance(host, Err):
            return host

        cmd = build_command(target, self._config.args)
        out_path = artifact_path(project_dir, target, self._binary)

        console.print(" ".join(cmd), Style.DIM)
        if dry_run:
            return Ok(BuildArtifact(target=target, path=out_path, size=0))

        env = dict(self._env)
        env["CARGO_TARGET_DIR"] = str(project_dir / "target")
        env["CARGO_TERM_COLOR"] = "never"
        if self._cache is not None:
            env.update(self._cache.env(project_dir))

        log_path = job_dir / BUILD_LOG_NAME
        result = run_logged(
            cmd,
            cwd=project_dir,
            log_path=log_path,
            env=env,
            timeout=BUILD_TIMEOUT_SECONDS,
        )
        if isinstance(result, Err):
            error = _classify_failure(result.error, log_path)
            excerpt = tail(result.error.output)
            if excerpt:
                console.print(excerpt, Style.DIM)
            return Err(error)

        if not out_path.is_file():
            return Err(
                PipelineError(
                    kind="output_missing",
                    message=f"build succeeded but {out_path} does not exist",
                    hint=f"Check the binary name ({self._binary}) and target triple",
                )
            )

        size = out_path.stat().st_size
        console.print(f"built {out_path.name} ({size} bytes)", Style.DIM)
        return Ok(BuildArtifact(target=target, path=out_path, size=size))


def _classify_failure(error: ProcessError, log_path: Path) -> PipelineError:
    text = error.output
    hint = f"Full log: {log_path}"

    if any(marker in text for marker in _LOCK_MISMATCH_MARKERS):
        return PipelineError(
            kind="lock_mismatch",
            message="Cargo.lock does not match Cargo.toml (--locked)",
            hint="Commit an up-to-date Cargo.lock and tag a new release",
        )
    if error.returncode == -1 and "timed out" not in error.stderr:
        # The process never started: cargo is not on PATH.
        return PipelineError(kind="toolchain_missing", message="cargo: missing", hint=error.stderr)
    if any(marker in text for marker in _MISSING_TARGET_MARKERS):
        return PipelineError(
            kind="toolchain_missing",
            message="toolchain for this target is not installed",
            hint=hint,
        )
    return PipelineError(
        kind="compile_failed",
        message=f"cargo build failed (exit {error.returncode})",
        hint=hint,
    )
