from __future__ import annotations

import typer

from relpipe import __version__
from relpipe.cli.commands.build_cmd import build
from relpipe.cli.commands.plan import plan
from relpipe.cli.commands.publish import publish
from relpipe.cli.commands.run_cmd import run
from relpipe.cli.commands.targets import targets


app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Build release binaries, attach them to the release, publish the package.",
)


# Commands
app.command()(run)
app.command()(plan)
app.command()(targets)
app.command()(build)
app.command()(publish)


def _show_version(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(
        False,
        "--version",
        callback=_show_version,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    pass


def main() -> None:
    app()
