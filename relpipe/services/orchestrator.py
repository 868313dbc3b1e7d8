"""Orchestrator: turn a published release into build, upload and publish jobs.

For every configured platform target one job runs checkout -> toolchain ->
build -> upload; one more job publishes the package to the registry. Each job
works in its own directory under ``<work_root>/<tag>/<job>``. With
``registry_gate = "after-builds"`` the registry job waits for every build job
and is skipped if any of them fails; by default the jobs are independent.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Protocol

from relpipe.core.config import RegistryGate
from relpipe.core.result import Err, Ok, Result
from relpipe.output.console import ConsoleProtocol, Style
from relpipe.services.errors import PipelineError
from relpipe.services.graph import Job, JobGraph
from relpipe.services.model import (
    BuildArtifact,
    JobOutcome,
    PipelineReport,
    PlatformTarget,
    RegistryPackage,
    ReleaseAsset,
    ReleaseEvent,
)
from relpipe.services.registry import read_manifest
from relpipe.services.semver import tag_matches_version

REGISTRY_JOB = "registry"
BUILD_JOB_PREFIX = "build:"


class SourceProvider(Protocol):
    def checkout(
        self, event: ReleaseEvent, dest: Path, *, console: ConsoleProtocol, dry_run: bool = False
    ) -> Result[Path, PipelineError]: ...


class Toolchain(Protocol):
    def ensure(
        self,
        target: PlatformTarget,
        *,
        project_dir: Path,
        console: ConsoleProtocol,
        dry_run: bool = False,
    ) -> Result[None, PipelineError]: ...


class Builder(Protocol):
    def check_host(self, target: PlatformTarget) -> Result[None, PipelineError]: ...

    def build(
        self,
        target: PlatformTarget,
        *,
        project_dir: Path,
        job_dir: Path,
        console: ConsoleProtocol,
        dry_run: bool = False,
    ) -> Result[BuildArtifact, PipelineError]: ...


class Uploader(Protocol):
    def publish(
        self,
        artifact: BuildArtifact,
        *,
        event: ReleaseEvent,
        console: ConsoleProtocol,
        dry_run: bool = False,
    ) -> Result[ReleaseAsset, PipelineError]: ...


class Publisher(Protocol):
    def publish(
        self, *, project_dir: Path, console: ConsoleProtocol, dry_run: bool = False
    ) -> Result[RegistryPackage, PipelineError]: ...


def build_job_name(target: PlatformTarget) -> str:
    return f"{BUILD_JOB_PREFIX}{target.id}"


class Orchestrator:
    def __init__(
        self,
        *,
        targets: tuple[PlatformTarget, ...],
        source: SourceProvider,
        toolchain: Toolchain,
        builder: Builder,
        uploader: Uploader,
        publisher: Publisher | None,
        console: ConsoleProtocol,
        work_root: Path,
        registry_gate: RegistryGate = "independent",
        max_parallel: int = 0,
        dry_run: bool = False,
    ) -> None:
        self._targets = targets
        self._source = source
        self._toolchain = toolchain
        self._builder = builder
        self._uploader = uploader
        self._publisher = publisher
        self._console = console
        self._work_root = work_root
        self._registry_gate: RegistryGate = registry_gate
        self._max_parallel = max_parallel
        self._dry_run = dry_run

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def should_run(self, event: ReleaseEvent) -> bool:
        return event.is_published and bool(event.upload_url)

    def plan(self, event: ReleaseEvent) -> JobGraph:
        """Job graph for ``event`` (built, not run)."""
        build_jobs = [
            Job(
                name=build_job_name(target),
                run=lambda target=target: self.run_build_job(event, target),
            )
            for target in self._targets
        ]
        jobs = list(build_jobs)
        if self._publisher is not None:
            needs = (
                tuple(j.name for j in build_jobs)
                if self._registry_gate == "after-builds"
                else ()
            )
            jobs.append(
                Job(name=REGISTRY_JOB, run=lambda: self.run_registry_job(event), needs=needs)
            )
        return JobGraph(jobs)

    def handle(self, event: ReleaseEvent) -> PipelineReport:
        """Run the whole pipeline for ``event``; ignored unless it is a published release."""
        if not self.should_run(event):
            reason = (
                f"action is {event.action!r}, not 'published'"
                if not event.is_published
                else "release has no upload endpoint"
            )
            self._console.info(f"ignoring release event for {event.tag}: {reason}")
            return PipelineReport(tag=event.tag, triggered=False)

        graph = self.plan(event)
        self._console.header(f"Release {event.tag}: {len(graph)} job(s)")
        outcomes = graph.run(max_workers=self._max_parallel, on_finish=self._report_outcome)
        return PipelineReport(tag=event.tag, outcomes=outcomes)

    # -------------------------------------------------------------------------
    # Jobs
    # -------------------------------------------------------------------------

    def run_build_job(
        self, event: ReleaseEvent, target: PlatformTarget, *, upload: bool = True
    ) -> Result[ReleaseAsset | BuildArtifact, PipelineError]:
        """checkout -> toolchain -> build -> upload for one target."""
        if upload and not event.upload_url:
            return Err(
                PipelineError(
                    kind="invalid_event",
                    message=f"release {event.tag} has no upload endpoint",
                    hint="Use --no-upload to build without attaching the asset",
                )
            )
        # Fail before cloning when this host cannot link the target at all.
        host = self._builder.check_host(target)
        if isinstance(host, Err):
            return host

        name = build_job_name(target)
        console = self._console.for_job(name)
        job_dir = self.job_dir(event, name)

        src = self._source.checkout(
            event, job_dir / "src", console=console, dry_run=self._dry_run
        )
        if isinstance(src, Err):
            return src

        tc = self._toolchain.ensure(
            target, project_dir=src.value, console=console, dry_run=self._dry_run
        )
        if isinstance(tc, Err):
            return tc

        artifact = self._builder.build(
            target,
            project_dir=src.value,
            job_dir=job_dir,
            console=console,
            dry_run=self._dry_run,
        )
        if isinstance(artifact, Err):
            return artifact
        if not upload:
            return Ok(artifact.value)

        return self._uploader.publish(
            artifact.value, event=event, console=console, dry_run=self._dry_run
        )

    def run_registry_job(self, event: ReleaseEvent) -> Result[RegistryPackage, PipelineError]:
        """checkout -> publish to the package registry."""
        if self._publisher is None:
            return Err(
                PipelineError(
                    kind="registry_failed",
                    message="registry publishing is disabled",
                    hint="Set registry.enabled = true in relpipe.toml",
                )
            )

        console = self._console.for_job(REGISTRY_JOB)
        job_dir = self.job_dir(event, REGISTRY_JOB)

        src = self._source.checkout(
            event, job_dir / "src", console=console, dry_run=self._dry_run
        )
        if isinstance(src, Err):
            return src

        if not self._dry_run:
            self._warn_on_version_drift(event, src.value, console)

        return self._publisher.publish(
            project_dir=src.value, console=console, dry_run=self._dry_run
        )

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def job_dir(self, event: ReleaseEvent, job_name: str) -> Path:
        return self._work_root / _safe_segment(event.tag) / _safe_segment(job_name)

    def _warn_on_version_drift(
        self, event: ReleaseEvent, project_dir: Path, console: ConsoleProtocol
    ) -> None:
        # The registry version comes from the manifest, never from the tag.
        manifest = read_manifest(project_dir)
        if isinstance(manifest, Ok) and manifest.value.version:
            if not tag_matches_version(event.tag, manifest.value.version):
                console.warning(
                    f"tag {event.tag} does not match manifest version {manifest.value.version}"
                )

    def _report_outcome(self, outcome: JobOutcome) -> None:
        console = self._console.for_job(outcome.name)
        match outcome.status:
            case "succeeded":
                console.success(f"{_describe(outcome.value)} ({outcome.duration_seconds:.1f}s)")
            case "skipped":
                message = outcome.error.message if outcome.error else "skipped"
                console.print(message, Style.WARNING)
            case "failed":
                if outcome.error is not None:
                    console.error(outcome.error.message)
                    if outcome.error.hint:
                        console.print(f"hint: {outcome.error.hint}", Style.DIM)


def _describe(value: object) -> str:
    match value:
        case ReleaseAsset(name=name, content_type=content_type):
            return f"uploaded {name} ({content_type})"
        case RegistryPackage():
            return f"published {value}"
        case BuildArtifact(path=path):
            return f"built {path}"
    return "done"


_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]+")


def _safe_segment(raw: str) -> str:
    return _UNSAFE_RE.sub("-", raw).strip("-.") or "_"
