from __future__ import annotations

from pathlib import Path

import pytest

from relpipe.core.result import Err, Ok, Result
from relpipe.core.secrets import Secret
from relpipe.output.console import MockConsole
from relpipe.platform.process import ProcessError
from relpipe.services.registry import (
    RegistryPublisher,
    read_manifest,
    token_env_var,
    validate_manifest,
)

TOKEN = Secret("cio_abcdef0123456789", label="CARGO_REGISTRY_TOKEN")

MANIFEST = """\
[package]
name = "dotter"
version = "1.2.0"
description = "A dotfile manager"
license = "MIT"
"""


def _project(tmp_path: Path, manifest: str = MANIFEST) -> Path:
    (tmp_path / "Cargo.toml").write_text(manifest, encoding="utf-8")
    return tmp_path


class FakeCargo:
    """Stands in for ``cargo publish`` against a registry holding ``published``."""

    def __init__(self, published: set[str] | None = None, token: str = TOKEN.reveal()) -> None:
        self.published = published if published is not None else set()
        self.token = token
        self.calls: list[tuple[list[str], dict[str, str]]] = []

    def __call__(
        self,
        cmd: list[str],
        cwd: Path,
        env: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> Result[str, ProcessError]:
        env = env or {}
        self.calls.append((cmd, env))
        manifest = read_manifest(cwd)
        assert isinstance(manifest, Ok)
        key = f"{manifest.value.name}@{manifest.value.version}"

        var = "CARGO_REGISTRY_TOKEN"
        if "--registry" in cmd:
            var = token_env_var(cmd[cmd.index("--registry") + 1])
        if env.get(var) != self.token:
            return self._fail(
                cmd,
                "error: failed to publish to registry\n\nCaused by:\n"
                "  the remote server responded with an error (status 403 Forbidden): "
                f"invalid token {env.get(var, '')}",
            )
        if key in self.published:
            return self._fail(
                cmd,
                f"error: crate version `{manifest.value.version}` is already uploaded",
            )
        self.published.add(key)
        return Ok(f"Uploading {key}")

    @staticmethod
    def _fail(cmd: list[str], stderr: str) -> Result[str, ProcessError]:
        return Err(ProcessError(command=tuple(cmd), returncode=101, stdout="", stderr=stderr))


def test_publish_uses_manifest_version(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import relpipe.services.registry as registry_mod

    cargo = FakeCargo()
    monkeypatch.setattr(registry_mod, "run_process", cargo)

    result = RegistryPublisher(token=TOKEN).publish(
        project_dir=_project(tmp_path), console=MockConsole()
    )

    assert isinstance(result, Ok)
    assert result.value.name == "dotter"
    assert result.value.version == "1.2.0"
    assert result.value.registry == "crates-io"
    assert cargo.published == {"dotter@1.2.0"}
    cmd, env = cargo.calls[0]
    assert cmd == ["cargo", "publish", "--locked"]
    assert env["CARGO_REGISTRY_TOKEN"] == TOKEN.reveal()
    assert all(TOKEN.reveal() not in part for part in cmd)


def test_version_exists_leaves_registry_unchanged(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    import relpipe.services.registry as registry_mod

    cargo = FakeCargo(published={"dotter@1.2.0"})
    monkeypatch.setattr(registry_mod, "run_process", cargo)

    result = RegistryPublisher(token=TOKEN).publish(
        project_dir=_project(tmp_path), console=MockConsole()
    )

    assert isinstance(result, Err)
    assert result.error.kind == "version_exists"
    assert result.error.message.startswith("version exists")
    assert result.error.exit_code == 6
    assert cargo.published == {"dotter@1.2.0"}


def test_rejected_token_is_not_leaked(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import relpipe.services.registry as registry_mod

    monkeypatch.setattr(registry_mod, "run_process", FakeCargo(token="the-right-one"))

    result = RegistryPublisher(token=TOKEN).publish(
        project_dir=_project(tmp_path), console=MockConsole()
    )

    assert isinstance(result, Err)
    assert result.error.kind == "registry_auth_failed"
    assert TOKEN.reveal() not in result.error.pretty()
    assert TOKEN.reveal() not in repr(result.error)


def test_named_registry_token_variable(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import relpipe.services.registry as registry_mod

    cargo = FakeCargo()
    monkeypatch.setattr(registry_mod, "run_process", cargo)

    result = RegistryPublisher(token=TOKEN, registry_name="my-registry").publish(
        project_dir=_project(tmp_path), console=MockConsole()
    )

    assert isinstance(result, Ok)
    assert result.value.registry == "my-registry"
    cmd, env = cargo.calls[0]
    assert cmd == ["cargo", "publish", "--locked", "--registry", "my-registry"]
    assert env["CARGO_REGISTRIES_MY_REGISTRY_TOKEN"] == TOKEN.reveal()


def test_missing_token(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import relpipe.services.registry as registry_mod

    cargo = FakeCargo()
    monkeypatch.setattr(registry_mod, "run_process", cargo)

    result = RegistryPublisher(token=None).publish(
        project_dir=_project(tmp_path), console=MockConsole()
    )

    assert isinstance(result, Err)
    assert result.error.kind == "registry_auth_failed"
    assert cargo.calls == []


def test_dry_run_needs_no_token(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import relpipe.services.registry as registry_mod

    cargo = FakeCargo()
    monkeypatch.setattr(registry_mod, "run_process", cargo)
    console = MockConsole()

    result = RegistryPublisher(token=None).publish(
        project_dir=_project(tmp_path), console=console, dry_run=True
    )

    assert isinstance(result, Ok)
    assert cargo.calls == []
    assert "cargo publish --locked" in console.text


def test_unpublishable_manifest_rejected_before_cargo(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    import relpipe.services.registry as registry_mod

    cargo = FakeCargo()
    monkeypatch.setattr(registry_mod, "run_process", cargo)
    manifest = '[package]\nname = "dotter"\nversion = "1.2"\npublish = false\n'

    result = RegistryPublisher(token=TOKEN).publish(
        project_dir=_project(tmp_path, manifest), console=MockConsole()
    )

    assert isinstance(result, Err)
    assert result.error.kind == "manifest_invalid"
    hint = result.error.hint or ""
    assert "semver" in hint
    assert "description" in hint
    assert "license" in hint
    assert "publish = false" in hint
    assert cargo.calls == []


class TestManifest:
    def test_workspace_inheritance(self, tmp_path: Path) -> None:
        _project(
            tmp_path,
            '[workspace.package]\nversion = "2.0.0"\nlicense = "Apache-2.0"\n\n'
            '[package]\nname = "dotter"\nversion.workspace = true\n'
            'license.workspace = true\ndescription = "x"\n',
        )

        result = read_manifest(tmp_path)

        assert isinstance(result, Ok)
        assert result.value.version == "2.0.0"
        assert result.value.license == "Apache-2.0"
        assert isinstance(validate_manifest(result.value), Ok)

    def test_missing_manifest(self, tmp_path: Path) -> None:
        result = read_manifest(tmp_path)
        assert isinstance(result, Err)
        assert result.error.kind == "manifest_invalid"

    def test_license_file_is_enough(self, tmp_path: Path) -> None:
        _project(
            tmp_path,
            '[package]\nname = "dotter"\nversion = "1.0.0"\ndescription = "x"\n'
            'license-file = "LICENSE"\n',
        )
        result = read_manifest(tmp_path)
        assert isinstance(result, Ok)
        assert isinstance(validate_manifest(result.value), Ok)


def test_token_env_var() -> None:
    assert token_env_var(None) == "CARGO_REGISTRY_TOKEN"
    assert token_env_var("my-registry") == "CARGO_REGISTRIES_MY_REGISTRY_TOKEN"


def test_publish_env_carries_only_registry_token(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    import relpipe.services.registry as registry_mod

    cargo = FakeCargo()
    monkeypatch.setattr(registry_mod, "run_process", cargo)
    monkeypatch.setenv("GITHUB_TOKEN", "ghs_registryleak")
    monkeypatch.setenv("CARGO_REGISTRY_TOKEN", "cio_ambient")

    result = RegistryPublisher(token=TOKEN).publish(
        project_dir=_project(tmp_path), console=MockConsole()
    )

    assert isinstance(result, Ok)
    _, env = cargo.calls[0]
    assert "GITHUB_TOKEN" not in env
    assert env["CARGO_REGISTRY_TOKEN"] == TOKEN.reveal()


def test_dry_run_without_checkout(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import relpipe.services.registry as registry_mod

    cargo = FakeCargo()
    monkeypatch.setattr(registry_mod, "run_process", cargo)
    console = MockConsole()

    result = RegistryPublisher(token=None).publish(
        project_dir=tmp_path / "not-cloned", console=console, dry_run=True
    )

    assert isinstance(result, Ok)
    assert result.value.registry == "crates-io"
    assert cargo.calls == []
    assert "manifest checks run after checkout" in console.text
