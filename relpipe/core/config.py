"""Typed loading of ``relpipe.toml``.

Platform targets are declared as a ``[[targets]]`` list so new targets need
no orchestration change. Everything else has defaults matching a Rust project
that ships a Linux and a Windows binary plus a crates.io package, all built
on one host (the Windows default is the cross-buildable gnu triple).
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from relpipe.platform.targets import Arch, Os
from relpipe.services.model import DEFAULT_CONTENT_TYPE, PlatformTarget

from .result import Err, Ok, Result
from .structured import (
    StrDict,
    as_str_dict,
    get_bool,
    get_int,
    get_list,
    get_str,
    get_str_list,
    get_table,
)

__all__ = [
    "Config",
    "ConfigError",
    "ProjectConfig",
    "ToolchainConfig",
    "BuildConfig",
    "PipelineSettings",
    "RegistryConfig",
    "UploadConfig",
    "RegistryGate",
    "CONFIG_FILE_NAME",
    "DEFAULT_TRIPLES",
    "default_targets",
    "infer_binary_name",
    "load_config",
    "load_config_or_default",
]

CONFIG_FILE_NAME = "relpipe.toml"

RegistryGate = Literal["independent", "after-builds"]
_GATES: tuple[RegistryGate, ...] = ("independent", "after-builds")

DEFAULT_TRIPLES: dict[tuple[Os, Arch], str] = {
    (Os.LINUX, Arch.X64): "x86_64-unknown-linux-gnu",
    (Os.LINUX, Arch.ARM64): "aarch64-unknown-linux-gnu",
    (Os.MACOS, Arch.X64): "x86_64-apple-darwin",
    (Os.MACOS, Arch.ARM64): "aarch64-apple-darwin",
    # gnu cross-links from any host; msvc needs a Windows host
    (Os.WINDOWS, Arch.X64): "x86_64-pc-windows-gnu",
    (Os.WINDOWS, Arch.ARM64): "aarch64-pc-windows-msvc",
}

_TARGET_ID_RE = re.compile(r"^[a-z0-9][a-z0-9._-]*$")


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Config file missing, unreadable or invalid."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class ProjectConfig:
    binary: str
    # None: clone from the event's repository
    clone_url: str | None = None


@dataclass(frozen=True, slots=True)
class ToolchainConfig:
    channel: str = "stable"
    profile: str = "minimal"
    override: bool = True
    install: bool = True


@dataclass(frozen=True, slots=True)
class BuildConfig:
    args: tuple[str, ...] = ()
    cache_dir: str | None = None


@dataclass(frozen=True, slots=True)
class PipelineSettings:
    work_dir: str = ".relpipe/work"
    registry_gate: RegistryGate = "independent"
    # 0 = one worker per job
    max_parallel: int = 0


@dataclass(frozen=True, slots=True)
class RegistryConfig:
    enabled: bool = True
    # None = crates.io
    name: str | None = None
    token_env: str = "CARGO_REGISTRY_TOKEN"


@dataclass(frozen=True, slots=True)
class UploadConfig:
    token_env: str = "GITHUB_TOKEN"


def default_targets(binary: str) -> tuple[PlatformTarget, ...]:
    """The stock pair: a bare Linux binary and a Windows ``.exe``."""
    return (
        _make_target("linux-x64", Os.LINUX, Arch.X64, binary),
        _make_target("windows-x64", Os.WINDOWS, Arch.X64, binary),
    )


def _make_target(
    target_id: str,
    os_: Os,
    arch: Arch,
    binary: str,
    *,
    triple: str | None = None,
    asset_name: str | None = None,
    content_type: str | None = None,
) -> PlatformTarget:
    return PlatformTarget(
        id=target_id,
        os=os_,
        arch=arch,
        triple=triple or DEFAULT_TRIPLES[(os_, arch)],
        asset_name=asset_name or os_.exe_name(binary),
        content_type=content_type or DEFAULT_CONTENT_TYPE,
    )


@dataclass(frozen=True, slots=True)
class Config:
    """Main configuration container."""

    project: ProjectConfig
    toolchain: ToolchainConfig = field(default_factory=ToolchainConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)
    targets: tuple[PlatformTarget, ...] = ()

    def __post_init__(self) -> None:
        _check_targets(self.targets)

    @classmethod
    def default(cls, binary: str) -> Config:
        return cls(project=ProjectConfig(binary=binary), targets=default_targets(binary))

    def target(self, target_id: str) -> PlatformTarget | None:
        for t in self.targets:
            if t.id == target_id:
                return t
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, object], *, default_binary: str | None = None) -> Config:
        """Create Config from parsed TOML.

        Raises:
            ValueError: On any invalid value; the message names the key.
        """
        project: StrDict = get_table(data, "project") or {}
        toolchain: StrDict = get_table(data, "toolchain") or {}
        build: StrDict = get_table(data, "build") or {}
        pipeline: StrDict = get_table(data, "pipeline") or {}
        registry: StrDict = get_table(data, "registry") or {}
        upload: StrDict = get_table(data, "upload") or {}

        binary = get_str(project, "binary") or default_binary
        if not binary:
            raise ValueError("project.binary is required")

        gate = get_str(pipeline, "registry_gate") or "independent"
        if gate not in _GATES:
            raise ValueError(
                f"pipeline.registry_gate must be one of {', '.join(_GATES)} (got {gate!r})"
            )

        max_parallel = get_int(pipeline, "max_parallel")
        if max_parallel is not None and max_parallel < 0:
            raise ValueError("pipeline.max_parallel must be >= 0")

        build_args = get_str_list(build, "args")
        if "args" in build and build_args is None:
            raise ValueError("build.args must be a list of strings")

        targets = _parse_targets(data, binary)

        return cls(
            project=ProjectConfig(binary=binary, clone_url=get_str(project, "clone_url")),
            toolchain=ToolchainConfig(
                channel=get_str(toolchain, "channel") or "stable",
                profile=get_str(toolchain, "profile") or "minimal",
                override=_bool_or(toolchain, "override", True),
                install=_bool_or(toolchain, "install", True),
            ),
            build=BuildConfig(
                args=tuple(build_args or ()),
                cache_dir=get_str(build, "cache_dir"),
            ),
            pipeline=PipelineSettings(
                work_dir=get_str(pipeline, "work_dir") or ".relpipe/work",
                registry_gate="after-builds" if gate == "after-builds" else "independent",
                max_parallel=max_parallel or 0,
            ),
            registry=RegistryConfig(
                enabled=_bool_or(registry, "enabled", True),
                name=get_str(registry, "name"),
                token_env=get_str(registry, "token_env") or "CARGO_REGISTRY_TOKEN",
            ),
            upload=UploadConfig(token_env=get_str(upload, "token_env") or "GITHUB_TOKEN"),
            targets=targets,
        )


def _bool_or(table: Mapping[str, object], key: str, default: bool) -> bool:
    value = get_bool(table, key)
    return default if value is None else value


def _parse_targets(data: Mapping[str, object], binary: str) -> tuple[PlatformTarget, ...]:
    if "targets" not in data:
        return default_targets(binary)

    raw = get_list(data, "targets")
    if raw is None:
        raise ValueError("targets must be an array of tables ([[targets]])")
    if not raw:
        raise ValueError("targets must not be empty")

    out: list[PlatformTarget] = []
    for index, item in enumerate(raw):
        tbl = as_str_dict(item)
        if tbl is None:
            raise ValueError(f"targets[{index}] must be a table")

        target_id = get_str(tbl, "id")
        if target_id is None or not _TARGET_ID_RE.match(target_id):
            raise ValueError(f"targets[{index}].id must match {_TARGET_ID_RE.pattern}")

        os_ = Os.parse(get_str(tbl, "os") or "")
        if os_ is None:
            raise ValueError(f"targets[{index}].os must be one of linux, macos, windows")
        arch = Arch.parse(get_str(tbl, "arch") or "x64")
        if arch is None:
            raise ValueError(f"targets[{index}].arch must be one of x64, arm64")

        out.append(
            _make_target(
                target_id,
                os_,
                arch,
                binary,
                triple=get_str(tbl, "triple"),
                asset_name=get_str(tbl, "asset_name"),
                content_type=get_str(tbl, "content_type"),
            )
        )
    return tuple(out)


def _check_targets(targets: tuple[PlatformTarget, ...]) -> None:
    """Reject colliding target ids or asset names."""
    seen_ids: set[str] = set()
    seen_assets: dict[str, str] = {}
    for t in targets:
        if t.id in seen_ids:
            raise ValueError(f"duplicate target id: {t.id}")
        seen_ids.add(t.id)

        if "/" in t.asset_name or "\\" in t.asset_name:
            raise ValueError(f"asset name must be a bare file name: {t.asset_name}")
        # Release asset names are compared case-insensitively by GitHub.
        key = t.asset_name.lower()
        if key in seen_assets:
            raise ValueError(
                f"asset name {t.asset_name!r} used by both {seen_assets[key]} and {t.id}"
            )
        seen_assets[key] = t.id


def infer_binary_name(project_dir: Path) -> str | None:
    """Binary name from ``Cargo.toml``: the first ``[[bin]]`` name, else the package name."""
    import tomllib

    manifest = project_dir / "Cargo.toml"
    try:
        data = as_str_dict(tomllib.loads(manifest.read_text(encoding="utf-8")))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError):
        return None
    if data is None:
        return None

    bins = get_list(data, "bin") or []
    for item in bins:
        tbl = as_str_dict(item)
        if tbl is not None and (name := get_str(tbl, "name")):
            return name

    package = get_table(data, "package") or {}
    return get_str(package, "name")


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Config root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))


def load_config(path: Path, *, default_binary: str | None = None) -> Result[Config, ConfigError]:
    """Load and validate ``relpipe.toml``.

    Args:
        path: Path to the config file.
        default_binary: Binary name used when ``project.binary`` is absent.

    Returns:
        Ok(Config) on success, Err(ConfigError) on failure.
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(Config.from_dict(result.value, default_binary=default_binary))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config: {e}", path=path))


def load_config_or_default(path: Path, *, project_dir: Path) -> Result[Config, ConfigError]:
    """Load ``path`` if it exists, else build the default config for ``project_dir``."""
    binary = infer_binary_name(project_dir)
    if path.exists():
        return load_config(path, default_binary=binary)
    if binary is None:
        return Err(
            ConfigError(
                f"No {CONFIG_FILE_NAME} and no Cargo.toml to infer the binary name from",
                path=path,
            )
        )
    return Ok(Config.default(binary))
