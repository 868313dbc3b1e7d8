"""Error and report presentation.

Centralized formatting and exit code mapping so every command renders
pipeline failures the same way.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from relpipe.core.errors import ErrorCode
from relpipe.output.console import Style
from relpipe.services.model import PipelineReport, RegistryPackage, ReleaseAsset

if TYPE_CHECKING:
    from relpipe.output.console import ConsoleProtocol
    from relpipe.services.errors import PipelineError

__all__ = ["print_pipeline_error", "print_report", "report_exit_code"]


def print_pipeline_error(error: PipelineError, console: ConsoleProtocol) -> None:
    console.error(f"{error.message} [{error.kind}]")
    if error.hint:
        console.print(f"hint: {error.hint}", Style.DIM)


def report_exit_code(report: PipelineReport) -> int:
    """0 when every job succeeded (or nothing ran), else the first failure's code.

    Skipped jobs only ever follow a failure, so the failure decides the code.
    """
    for outcome in report.outcomes:
        if outcome.status == "failed" and outcome.error is not None:
            return int(outcome.error.exit_code)
    if not report.success:
        return int(ErrorCode.INTERNAL_ERROR)
    return int(ErrorCode.OK)


def print_report(report: PipelineReport, console: ConsoleProtocol) -> None:
    if not report.triggered:
        return

    rows: list[tuple[str, str, str]] = []
    for outcome in report.outcomes:
        match outcome.value:
            case ReleaseAsset(name=name):
                detail = name
            case RegistryPackage():
                detail = f"{outcome.value.name} {outcome.value.version}"
            case _:
                detail = outcome.error.kind if outcome.error is not None else ""
        rows.append((outcome.name, outcome.status, detail))

    console.table(f"Release {report.tag}", ("job", "status", "result"), rows)
    if report.success:
        console.success(f"all {len(report.outcomes)} job(s) succeeded")
    else:
        failed = len(report.failed)
        skipped = len(report.skipped)
        console.error(f"{failed} job(s) failed, {skipped} skipped; re-run failed jobs manually")
