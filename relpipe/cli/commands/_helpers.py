"""Shared helpers for CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, NoReturn, TypeVar

import typer

from relpipe.core.errors import ErrorCode
from relpipe.core.result import Err, Result
from relpipe.output.errors import print_pipeline_error
from relpipe.services.errors import PipelineError
from relpipe.services.event import read_event
from relpipe.services.model import ReleaseEvent

if TYPE_CHECKING:
    from relpipe.output.console import ConsoleProtocol

CONFIG_OPTION = typer.Option(Path("relpipe.toml"), "--config", help="Pipeline config file")
PROJECT_DIR_OPTION = typer.Option(
    Path("."), "--project-dir", help="Project root (config lookup, binary name)"
)
EVENT_OPTION = typer.Option(
    ...,
    "--event",
    envvar="GITHUB_EVENT_PATH",
    help="Release event payload (JSON)",
)
DRY_RUN_OPTION = typer.Option(False, "--dry-run", help="Print actions without executing them")

T = TypeVar("T")


def exit_on_error(
    result: Result[T, PipelineError], console: ConsoleProtocol
) -> T:
    """Return the value, or print the error and exit with its category's code."""
    if isinstance(result, Err):
        print_pipeline_error(result.error, console)
        raise typer.Exit(code=int(result.error.exit_code))
    return result.value


def load_event(path: Path, console: ConsoleProtocol) -> ReleaseEvent:
    return exit_on_error(read_event(path), console)


def exit_with_code(code: int) -> NoReturn:
    raise typer.Exit(code=code)


def exit_user_error(message: str, console: ConsoleProtocol) -> NoReturn:
    console.error(message)
    raise typer.Exit(code=int(ErrorCode.USER_ERROR))
