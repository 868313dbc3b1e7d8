from __future__ import annotations

from typer.testing import CliRunner

from relpipe import __version__
from relpipe.cli.app import app


def test_version_flag() -> None:
    result = CliRunner().invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.output.strip() == __version__


def test_commands_registered() -> None:
    result = CliRunner().invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("run", "plan", "targets", "build", "publish"):
        assert command in result.output
