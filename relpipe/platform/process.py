"""Subprocess execution with Result-based error handling.

Every external step of a job (git, rustup, cargo) goes through here so that
failures come back as ``ProcessError`` values instead of exceptions.

    result = run(["git", "--version"], cwd=Path("."))
    match result:
        case Ok(stdout):
            ...
        case Err(error):
            console.error(str(error))
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path

from relpipe.core.result import Err, Ok, Result

__all__ = ["ProcessError", "run", "run_logged", "tail"]


@dataclass(frozen=True, slots=True)
class ProcessError:
    """A command that could not start, timed out, or exited non-zero.

    Attributes:
        command: The command that was executed.
        returncode: Exit code, or -1 when the process never completed.
        stdout: Captured standard output (combined output for ``run_logged``).
        stderr: Captured standard error, or the launch/timeout reason.
    """

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    def __str__(self) -> str:
        cmd_str = " ".join(self.command[:3])
        if len(self.command) > 3:
            cmd_str += " ..."
        return f"{cmd_str} failed (exit {self.returncode})"

    @property
    def output(self) -> str:
        """stdout and stderr joined, for pattern matching on diagnostics."""
        return f"{self.stdout}\n{self.stderr}"


def run(
    cmd: list[str],
    cwd: Path,
    env: dict[str, str] | None = None,
    *,
    timeout: float | None = None,
) -> Result[str, ProcessError]:
    """Execute a command and return its stdout.

    Args:
        cmd: Command and arguments.
        cwd: Working directory.
        env: Full child environment (inherits the current one if None).
        timeout: Maximum seconds to wait (None for no limit).

    Returns:
        Ok(stdout) on exit 0, Err(ProcessError) otherwise.
    """
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd),
            env=env,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=-1,
                stdout=e.stdout if isinstance(e.stdout, str) else "",
                stderr=f"Command timed out after {timeout}s",
            )
        )
    except OSError as e:
        return Err(ProcessError(command=tuple(cmd), returncode=-1, stdout="", stderr=str(e)))

    if proc.returncode != 0:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=proc.returncode,
                stdout=proc.stdout,
                stderr=proc.stderr,
            )
        )

    return Ok(proc.stdout)


def run_logged(
    cmd: list[str],
    cwd: Path,
    log_path: Path,
    env: dict[str, str] | None = None,
    *,
    timeout: float | None = None,
) -> Result[str, ProcessError]:
    """Execute a command, writing stdout+stderr interleaved to ``log_path``.

    The log is kept whether the command succeeds or fails, so verbose
    diagnostics survive for triage. On failure the combined output is in
    ``ProcessError.stdout``.
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with log_path.open("w", encoding="utf-8") as log:
            log.write(f"$ {' '.join(cmd)}\n")
            log.flush()
            proc = subprocess.run(
                cmd,
                cwd=str(cwd),
                env=env,
                stdout=log,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=timeout,
                check=False,
            )
    except subprocess.TimeoutExpired:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=-1,
                stdout=_read_log(log_path),
                stderr=f"Command timed out after {timeout}s",
            )
        )
    except OSError as e:
        return Err(ProcessError(command=tuple(cmd), returncode=-1, stdout="", stderr=str(e)))

    output = _read_log(log_path)
    if proc.returncode != 0:
        return Err(
            ProcessError(command=tuple(cmd), returncode=proc.returncode, stdout=output, stderr="")
        )
    return Ok(output)


def tail(text: str, lines: int = 20) -> str:
    """Last ``lines`` non-empty lines of ``text``."""
    kept = [line for line in text.splitlines() if line.strip()]
    return "\n".join(kept[-lines:])


def _read_log(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ""
