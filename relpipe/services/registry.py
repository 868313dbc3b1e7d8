"""Registry publisher: push the package version described by Cargo.toml.

The credential is handed in explicitly and reaches cargo only through the
child environment, never the command line. Every failure is terminal; the
registry either accepts the whole upload or keeps nothing.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from relpipe.core.result import Err, Ok, Result
from relpipe.core.secrets import Secret, child_environ
from relpipe.core.structured import StrDict, as_str_dict, get_bool, get_str, get_table
from relpipe.core.timeouts import REGISTRY_TIMEOUT_SECONDS
from relpipe.output.console import ConsoleProtocol, Style
from relpipe.platform.process import run as run_process
from relpipe.platform.process import tail
from relpipe.services.errors import PipelineError
from relpipe.services.model import RegistryPackage
from relpipe.services.semver import parse_version

DEFAULT_REGISTRY = "crates-io"

_VERSION_EXISTS_MARKERS = ("already uploaded", "already exists")
_AUTH_MARKERS = (
    "status 401",
    "status 403",
    "unauthorized",
    "forbidden",
    "invalid token",
    "no token found",
    "authentication",
    "not logged in",
)
_MANIFEST_MARKERS = (
    "failed to parse manifest",
    "failed to verify manifest",
    "missing or empty metadata fields",
    "cannot be published",
)
_CRATE_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_-]{0,63}$")


@dataclass(frozen=True, slots=True)
class PackageManifest:
    name: str
    version: str
    description: str | None
    license: str | None
    license_file: str | None
    publish: bool


def token_env_var(registry_name: str | None) -> str:
    """Environment variable cargo reads the token for ``registry_name`` from."""
    if not registry_name:
        return "CARGO_REGISTRY_TOKEN"
    key = re.sub(r"[^A-Za-z0-9]", "_", registry_name).upper()
    return f"CARGO_REGISTRIES_{key}_TOKEN"


def read_manifest(project_dir: Path) -> Result[PackageManifest, PipelineError]:
    import tomllib

    path = project_dir / "Cargo.toml"
    try:
        data_obj: object = tomllib.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return Err(PipelineError(kind="manifest_invalid", message=f"{path} not found"))
    except (OSError, UnicodeDecodeError) as e:
        return Err(PipelineError(kind="manifest_invalid", message=f"cannot read {path}: {e}"))
    except tomllib.TOMLDecodeError as e:
        return Err(PipelineError(kind="manifest_invalid", message=f"invalid TOML in {path}: {e}"))

    data = as_str_dict(data_obj) or {}
    package = get_table(data, "package")
    if package is None:
        return Err(PipelineError(kind="manifest_invalid", message="Cargo.toml has no [package]"))

    workspace_pkg: StrDict = get_table(get_table(data, "workspace") or {}, "package") or {}

    publish_obj = package.get("publish", True)
    publish = publish_obj is not False and publish_obj != []

    return Ok(
        PackageManifest(
            name=get_str(package, "name") or "",
            version=_inherited_str(package, workspace_pkg, "version") or "",
            description=_inherited_str(package, workspace_pkg, "description"),
            license=_inherited_str(package, workspace_pkg, "license"),
            license_file=_inherited_str(package, workspace_pkg, "license-file"),
            publish=publish,
        )
    )


def _inherited_str(package: StrDict, workspace_pkg: StrDict, key: str) -> str | None:
    """``key`` from [package], following ``key.workspace = true`` to [workspace.package]."""
    tbl = get_table(package, key)
    if tbl is not None and get_bool(tbl, "workspace"):
        return get_str(workspace_pkg, key)
    return get_str(package, key)


def validate_manifest(manifest: PackageManifest) -> Result[None, PipelineError]:
    """Checks the registry would otherwise reject after packaging."""
    problems: list[str] = []
    if not _CRATE_NAME_RE.match(manifest.name):
        problems.append(f"invalid package name {manifest.name!r}")
    if parse_version(manifest.version) is None:
        problems.append(f"version {manifest.version!r} is not valid semver")
    if not manifest.description:
        problems.append("missing description")
    if not manifest.license and not manifest.license_file:
        problems.append("missing license or license-file")
    if not manifest.publish:
        problems.append("package sets publish = false")

    if problems:
        return Err(
            PipelineError(
                kind="manifest_invalid",
                message="package manifest is not publishable",
                hint="; ".join(problems),
            )
        )
    return Ok(None)


class RegistryPublisher:
    def __init__(
        self,
        *,
        token: Secret | None,
        registry_name: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._token = token
        self._registry_name = registry_name
        self._env = dict(env) if env is not None else child_environ()

    @property
    def registry(self) -> str:
        return self._registry_name or DEFAULT_REGISTRY

    def publish(
        self,
        *,
        project_dir: Path,
        console: ConsoleProtocol,
        dry_run: bool = False,
    ) -> Result[RegistryPackage, PipelineError]:
        if dry_run and not (project_dir / "Cargo.toml").is_file():
            # Dry-run checkouts are not cloned; the manifest is only known afterwards.
            console.print(" ".join(self._command()), Style.DIM)
            console.print("manifest checks run after checkout", Style.DIM)
            return Ok(
                RegistryPackage(name="(unchecked)", version="(unchecked)", registry=self.registry)
            )

        manifest = read_manifest(project_dir)
        if isinstance(manifest, Err):
            return manifest
        valid = validate_manifest(manifest.value)
        if isinstance(valid, Err):
            return valid

        package = RegistryPackage(
            name=manifest.value.name,
            version=manifest.value.version,
            registry=self.registry,
        )

        cmd = self._command()
        console.print(" ".join(cmd), Style.DIM)
        console.print(f"publishing {package}", Style.DIM)
        if dry_run:
            return Ok(package)

        if not self._token:
            return Err(
                PipelineError(
                    kind="registry_auth_failed",
                    message="no registry token provided",
                    hint=f"Set {token_env_var(self._registry_name)}",
                )
            )

        env = dict(self._env)
        env[token_env_var(self._registry_name)] = self._token.reveal()
        env["CARGO_TERM_COLOR"] = "never"

        result = run_process(cmd, cwd=project_dir, env=env, timeout=REGISTRY_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return Err(self._classify_failure(result.error.output, package))
        return Ok(package)

    def _command(self) -> list[str]:
        cmd = ["cargo", "publish", "--locked"]
        if self._registry_name:
            cmd += ["--registry", self._registry_name]
        return cmd

    def _scrub(self, text: str) -> str:
        token = self._token.reveal() if self._token else ""
        return text.replace(token, "***") if token else text

    def _classify_failure(self, output: str, package: RegistryPackage) -> PipelineError:
        lowered = output.lower()
        hint = self._scrub(tail(output, 5)) or None

        if any(marker in lowered for marker in _VERSION_EXISTS_MARKERS):
            return PipelineError(
                kind="version_exists",
                message=f"version exists: {package.name}@{package.version} is already published",
                hint="Bump the version in Cargo.toml; published versions are immutable",
            )
        if any(marker in lowered for marker in _AUTH_MARKERS):
            return PipelineError(
                kind="registry_auth_failed",
                message=f"{package.registry} rejected the registry token",
                hint=hint,
            )
        if any(marker in lowered for marker in _MANIFEST_MARKERS):
            return PipelineError(
                kind="manifest_invalid",
                message="the registry rejected the package manifest",
                hint=hint,
            )
        return PipelineError(
            kind="registry_failed",
            message=f"cargo publish of {package} failed",
            hint=hint,
        )
