from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from relpipe.platform.targets import Arch, Os
from relpipe.services.errors import PipelineError

DEFAULT_CONTENT_TYPE = "application/octet-stream"

JobStatus = Literal["succeeded", "failed", "skipped"]


@dataclass(frozen=True, slots=True)
class ReleaseEvent:
    """A release that has just been made public (or some other release action)."""

    action: str
    tag: str
    release_id: int
    upload_url: str
    repository: str | None = None
    clone_url: str | None = None

    @property
    def is_published(self) -> bool:
        return self.action == "published"


@dataclass(frozen=True, slots=True)
class PlatformTarget:
    """One (os, arch) pair the project is compiled for."""

    id: str
    os: Os
    arch: Arch
    triple: str
    asset_name: str
    content_type: str = DEFAULT_CONTENT_TYPE


@dataclass(frozen=True, slots=True)
class BuildArtifact:
    target: PlatformTarget
    path: Path
    size: int

    @property
    def content_type(self) -> str:
        return self.target.content_type


@dataclass(frozen=True, slots=True)
class ReleaseAsset:
    name: str
    content_type: str
    size: int
    release_id: int
    url: str | None = None


@dataclass(frozen=True, slots=True)
class RegistryPackage:
    name: str
    version: str
    registry: str = "crates-io"

    def __str__(self) -> str:
        return f"{self.name}@{self.version} ({self.registry})"


@dataclass(frozen=True, slots=True)
class JobOutcome:
    name: str
    status: JobStatus
    error: PipelineError | None = None
    value: object | None = None
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


@dataclass(frozen=True, slots=True)
class PipelineReport:
    tag: str
    outcomes: tuple[JobOutcome, ...] = ()
    triggered: bool = True

    @property
    def success(self) -> bool:
        return all(o.succeeded for o in self.outcomes)

    @property
    def failed(self) -> tuple[JobOutcome, ...]:
        return tuple(o for o in self.outcomes if o.status == "failed")

    @property
    def skipped(self) -> tuple[JobOutcome, ...]:
        return tuple(o for o in self.outcomes if o.status == "skipped")

    def outcome(self, name: str) -> JobOutcome | None:
        for o in self.outcomes:
            if o.name == name:
                return o
        return None
