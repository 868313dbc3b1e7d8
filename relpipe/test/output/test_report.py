from __future__ import annotations

from relpipe.core.errors import ErrorCode
from relpipe.output.console import MockConsole
from relpipe.output.errors import print_pipeline_error, print_report, report_exit_code
from relpipe.services.errors import PipelineError
from relpipe.services.model import JobOutcome, PipelineReport, RegistryPackage

FAILED = JobOutcome(
    name="registry",
    status="failed",
    error=PipelineError(kind="version_exists", message="version exists", hint="Bump it"),
)
SKIPPED = JobOutcome(
    name="announce",
    status="skipped",
    error=PipelineError(kind="dependency_failed", message="skipped"),
)


def test_exit_code_success() -> None:
    report = PipelineReport(
        tag="v1", outcomes=(JobOutcome(name="build:linux-x64", status="succeeded"),)
    )
    assert report_exit_code(report) == 0


def test_exit_code_ignored_event() -> None:
    assert report_exit_code(PipelineReport(tag="v1", triggered=False)) == 0


def test_exit_code_first_failure_wins() -> None:
    compile_failed = JobOutcome(
        name="build:windows-x64",
        status="failed",
        error=PipelineError(kind="compile_failed", message="boom"),
    )
    report = PipelineReport(tag="v1", outcomes=(compile_failed, FAILED, SKIPPED))
    assert report_exit_code(report) == int(ErrorCode.BUILD_ERROR)


def test_exit_code_only_skips_is_internal() -> None:
    report = PipelineReport(tag="v1", outcomes=(SKIPPED,))
    assert report_exit_code(report) == int(ErrorCode.INTERNAL_ERROR)


def test_print_pipeline_error_with_hint() -> None:
    console = MockConsole()
    print_pipeline_error(FAILED.error, console)  # type: ignore[arg-type]
    assert console.messages == ["error: version exists [version_exists]", "hint: Bump it"]


def test_print_report_summary() -> None:
    console = MockConsole()
    ok = JobOutcome(
        name="registry2",
        status="succeeded",
        value=RegistryPackage(name="dotter", version="1.2.0"),
    )
    print_report(PipelineReport(tag="v1.2.0", outcomes=(ok, FAILED, SKIPPED)), console)

    assert "registry2 | succeeded | dotter 1.2.0" in console.text
    assert "registry | failed | version_exists" in console.text
    assert "1 job(s) failed, 1 skipped" in console.text


def test_print_report_skips_ignored_events() -> None:
    console = MockConsole()
    print_report(PipelineReport(tag="v1", triggered=False), console)
    assert console.outputs == []
