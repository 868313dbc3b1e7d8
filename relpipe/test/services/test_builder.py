from __future__ import annotations

import stat
import sys
from pathlib import Path

import pytest

from relpipe.core.config import BuildConfig, default_targets
from relpipe.core.result import Err, Ok, Result
from relpipe.output.console import MockConsole
from relpipe.platform.process import ProcessError
from relpipe.platform.targets import Arch, Os
from relpipe.services.builder import (
    BUILD_LOG_NAME,
    ArtifactBuilder,
    artifact_path,
    build_command,
    host_can_build,
)
from relpipe.services.model import DEFAULT_CONTENT_TYPE, PlatformTarget
from relpipe.services.toolchain import DependencyCache

LINUX, WINDOWS = default_targets("dotter")


def _fake_run_logged(
    seen: dict[str, object],
    *,
    produce: Path | None = None,
    fail_with: str | None = None,
    returncode: int = 101,
):
    def fake(
        cmd: list[str],
        cwd: Path,
        log_path: Path,
        env: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> Result[str, ProcessError]:
        seen["cmd"] = cmd
        seen["cwd"] = cwd
        seen["env"] = env
        seen["log_path"] = log_path
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_path.write_text(fail_with or "Finished release", encoding="utf-8")
        if fail_with is not None:
            return Err(
                ProcessError(
                    command=tuple(cmd), returncode=returncode, stdout=fail_with, stderr=""
                )
            )
        if produce is not None:
            produce.parent.mkdir(parents=True, exist_ok=True)
            produce.write_bytes(b"\x7fELF binary")
        return Ok("Finished release")

    return fake


def test_build_command_is_release_locked_verbose() -> None:
    assert build_command(WINDOWS, ("--features", "cli")) == [
        "cargo",
        "build",
        "--release",
        "--locked",
        "--verbose",
        "--target",
        "x86_64-pc-windows-gnu",
        "--features",
        "cli",
    ]


def test_artifact_path_uses_exe_suffix(tmp_path: Path) -> None:
    path = artifact_path(tmp_path, WINDOWS, "dotter")
    assert path == tmp_path / "target" / "x86_64-pc-windows-gnu" / "release" / "dotter.exe"


def test_build_success(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import relpipe.services.builder as builder_mod

    src = tmp_path / "src"
    src.mkdir()
    seen: dict[str, object] = {}
    monkeypatch.setattr(
        builder_mod,
        "run_logged",
        _fake_run_logged(seen, produce=artifact_path(src, LINUX, "dotter")),
    )
    console = MockConsole()

    result = ArtifactBuilder(binary="dotter", config=BuildConfig()).build(
        LINUX, project_dir=src, job_dir=tmp_path, console=console
    )

    assert isinstance(result, Ok)
    artifact = result.value
    assert artifact.path.name == "dotter"
    assert artifact.size == len(b"\x7fELF binary")
    assert artifact.content_type == DEFAULT_CONTENT_TYPE
    assert seen["log_path"] == tmp_path / BUILD_LOG_NAME
    env = seen["env"]
    assert isinstance(env, dict)
    assert env["CARGO_TARGET_DIR"] == str(src / "target")


def test_build_compile_failure_keeps_log(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import relpipe.services.builder as builder_mod

    seen: dict[str, object] = {}
    monkeypatch.setattr(
        builder_mod,
        "run_logged",
        _fake_run_logged(seen, fail_with="error[E0425]: cannot find value `x` in this scope"),
    )
    console = MockConsole()

    result = ArtifactBuilder(binary="dotter", config=BuildConfig()).build(
        WINDOWS, project_dir=tmp_path, job_dir=tmp_path / "job", console=console
    )

    assert isinstance(result, Err)
    assert result.error.kind == "compile_failed"
    assert result.error.exit_code == 3
    assert str(tmp_path / "job" / BUILD_LOG_NAME) in (result.error.hint or "")
    assert (tmp_path / "job" / BUILD_LOG_NAME).is_file()
    assert "E0425" in console.text


def test_build_lock_mismatch(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import relpipe.services.builder as builder_mod

    output = "error: the lock file Cargo.lock needs to be updated but --locked was passed"
    monkeypatch.setattr(builder_mod, "run_logged", _fake_run_logged({}, fail_with=output))

    result = ArtifactBuilder(binary="dotter", config=BuildConfig()).build(
        LINUX, project_dir=tmp_path, job_dir=tmp_path / "job", console=MockConsole()
    )

    assert isinstance(result, Err)
    assert result.error.kind == "lock_mismatch"


def test_build_missing_target_std(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import relpipe.services.builder as builder_mod

    output = "error[E0463]: can't find crate for `std`\n= note: the target may not be installed"
    monkeypatch.setattr(builder_mod, "run_logged", _fake_run_logged({}, fail_with=output))

    result = ArtifactBuilder(binary="dotter", config=BuildConfig()).build(
        WINDOWS, project_dir=tmp_path, job_dir=tmp_path / "job", console=MockConsole()
    )

    assert isinstance(result, Err)
    assert result.error.kind == "toolchain_missing"


def test_build_output_missing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import relpipe.services.builder as builder_mod

    monkeypatch.setattr(builder_mod, "run_logged", _fake_run_logged({}))

    result = ArtifactBuilder(binary="dotter", config=BuildConfig()).build(
        LINUX, project_dir=tmp_path, job_dir=tmp_path / "job", console=MockConsole()
    )

    assert isinstance(result, Err)
    assert result.error.kind == "output_missing"


def test_dry_run_does_not_invoke_cargo(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import relpipe.services.builder as builder_mod

    def fail(*_args: object, **_kwargs: object) -> Result[str, ProcessError]:
        raise AssertionError("cargo must not run in dry-run mode")

    monkeypatch.setattr(builder_mod, "run_logged", fail)
    console = MockConsole()

    result = ArtifactBuilder(binary="dotter", config=BuildConfig()).build(
        LINUX, project_dir=tmp_path, job_dir=tmp_path, console=console, dry_run=True
    )

    assert isinstance(result, Ok)
    assert "cargo build --release --locked --verbose" in console.text


def test_dependency_cache_sets_cargo_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import relpipe.services.builder as builder_mod

    src = tmp_path / "src"
    src.mkdir()
    (src / "Cargo.lock").write_text("# lock v1\n", encoding="utf-8")
    seen: dict[str, object] = {}
    monkeypatch.setattr(
        builder_mod,
        "run_logged",
        _fake_run_logged(seen, produce=artifact_path(src, LINUX, "dotter")),
    )
    cache = DependencyCache(tmp_path / "cache", project="dotter")

    result = ArtifactBuilder(binary="dotter", config=BuildConfig(), cache=cache).build(
        LINUX, project_dir=src, job_dir=tmp_path / "job", console=MockConsole()
    )

    assert isinstance(result, Ok)
    env = seen["env"]
    assert isinstance(env, dict)
    assert env["CARGO_HOME"] == str(tmp_path / "cache" / f"dotter-{cache.key(src)}")


def _target(os_: Os, triple: str) -> PlatformTarget:
    return PlatformTarget(
        id=f"{os_}-x64", os=os_, arch=Arch.X64, triple=triple, asset_name=os_.exe_name("dotter")
    )


@pytest.mark.parametrize(
    ("target", "host", "allowed"),
    [
        (_target(Os.WINDOWS, "x86_64-pc-windows-gnu"), Os.LINUX, True),
        (_target(Os.WINDOWS, "x86_64-pc-windows-msvc"), Os.LINUX, False),
        (_target(Os.WINDOWS, "x86_64-pc-windows-msvc"), Os.WINDOWS, True),
        (_target(Os.MACOS, "x86_64-apple-darwin"), Os.LINUX, False),
        (_target(Os.MACOS, "x86_64-apple-darwin"), Os.MACOS, True),
        (_target(Os.LINUX, "x86_64-unknown-linux-musl"), Os.MACOS, True),
        (_target(Os.MACOS, "x86_64-apple-darwin"), None, True),
    ],
)
def test_host_can_build(target: PlatformTarget, host: Os | None, allowed: bool) -> None:
    assert host_can_build(target, host) is allowed


def test_default_targets_build_on_linux() -> None:
    builder = ArtifactBuilder(binary="dotter", config=BuildConfig(), host_os=Os.LINUX)

    assert isinstance(builder.check_host(LINUX), Ok)
    assert isinstance(builder.check_host(WINDOWS), Ok)


def test_msvc_rejected_before_cargo(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import relpipe.services.builder as builder_mod

    seen: dict[str, object] = {}
    monkeypatch.setattr(builder_mod, "run_logged", _fake_run_logged(seen))
    msvc = _target(Os.WINDOWS, "x86_64-pc-windows-msvc")

    result = ArtifactBuilder(binary="dotter", config=BuildConfig(), host_os=Os.LINUX).build(
        msvc, project_dir=tmp_path, job_dir=tmp_path, console=MockConsole()
    )

    assert isinstance(result, Err)
    assert result.error.kind == "host_unsupported"
    assert result.error.exit_code == 2
    assert "windows host" in (result.error.hint or "")
    assert seen == {}


def test_build_env_has_no_credentials(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import relpipe.services.builder as builder_mod

    monkeypatch.setenv("GITHUB_TOKEN", "ghs_buildleak")
    monkeypatch.setenv("CARGO_REGISTRY_TOKEN", "cio_buildleak")
    monkeypatch.setenv("CARGO_REGISTRIES_MIRROR_TOKEN", "cio_mirrorleak")
    src = tmp_path / "src"
    src.mkdir()
    seen: dict[str, object] = {}
    monkeypatch.setattr(
        builder_mod,
        "run_logged",
        _fake_run_logged(seen, produce=artifact_path(src, LINUX, "dotter")),
    )

    result = ArtifactBuilder(binary="dotter", config=BuildConfig()).build(
        LINUX, project_dir=src, job_dir=tmp_path, console=MockConsole()
    )

    assert isinstance(result, Ok)
    env = seen["env"]
    assert isinstance(env, dict)
    assert "GITHUB_TOKEN" not in env
    assert "CARGO_REGISTRY_TOKEN" not in env
    assert "CARGO_REGISTRIES_MIRROR_TOKEN" not in env
    assert "PATH" in env


@pytest.mark.skipif(sys.platform == "win32", reason="uses a POSIX shell script as cargo")
def test_build_log_has_no_credentials(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    cargo = bin_dir / "cargo"
    release = f"$CARGO_TARGET_DIR/{LINUX.triple}/release"
    cargo.write_text(
        "#!/bin/sh\n"
        'echo "registry=${CARGO_REGISTRY_TOKEN:-unset}"\n'
        'echo "github=${GITHUB_TOKEN:-unset}"\n'
        f'mkdir -p "{release}"\n'
        f'printf bin > "{release}/dotter"\n',
        encoding="utf-8",
    )
    cargo.chmod(cargo.stat().st_mode | stat.S_IXUSR)
    monkeypatch.setenv("PATH", f"{bin_dir}:/usr/bin:/bin")
    monkeypatch.setenv("GITHUB_TOKEN", "ghs_logleak")
    monkeypatch.setenv("CARGO_REGISTRY_TOKEN", "cio_logleak")
    src = tmp_path / "src"
    src.mkdir()
    job = tmp_path / "job"

    result = ArtifactBuilder(binary="dotter", config=BuildConfig(), host_os=Os.LINUX).build(
        LINUX, project_dir=src, job_dir=job, console=MockConsole()
    )

    assert isinstance(result, Ok)
    log = (job / BUILD_LOG_NAME).read_text(encoding="utf-8")
    assert "registry=unset" in log
    assert "github=unset" in log
    assert "logleak" not in log
