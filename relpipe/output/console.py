"""Console output abstraction.

Services print through ``ConsoleProtocol`` so they never depend on Rich
directly. Jobs run on worker threads, so implementations serialize writes and
every job gets a child console (``for_job``) that prefixes its lines with the
job name. Registered secrets are replaced by ``***`` in everything printed,
the same masking CI runners apply to their logs.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Protocol

from relpipe.core.secrets import Secret

__all__ = [
    "Style",
    "ConsoleProtocol",
    "RichConsole",
    "MockConsole",
]


class Style(Enum):
    """Text styles for console output."""

    DEFAULT = auto()
    SUCCESS = auto()
    ERROR = auto()
    WARNING = auto()
    INFO = auto()
    DIM = auto()
    BOLD = auto()
    HEADER = auto()

    def __str__(self) -> str:
        return self.name.lower()


class ConsoleProtocol(Protocol):
    """Styled, thread-safe, secret-masking output."""

    def print(self, message: str, style: Style = Style.DEFAULT) -> None: ...

    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...

    def header(self, message: str) -> None: ...

    def newline(self) -> None: ...

    def table(
        self, title: str, columns: tuple[str, ...], rows: list[tuple[str, ...]]
    ) -> None:
        """Render a small table (run summaries, target listings)."""
        ...

    def mask(self, secret: Secret) -> None:
        """Never print ``secret``'s value from now on, on this console or its children."""
        ...

    def for_job(self, job: str) -> ConsoleProtocol:
        """Child console whose lines are prefixed with ``[job]``."""
        ...


class _Masker:
    """Secret values shared by a console and all of its job children."""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self._values: set[str] = set()

    def add(self, secret: Secret) -> None:
        value = secret.reveal()
        if value:
            with self.lock:
                self._values.add(value)

    def apply(self, text: str) -> str:
        with self.lock:
            values = sorted(self._values, key=len, reverse=True)
        for value in values:
            text = text.replace(value, "***")
        return text


class RichConsole:
    """Production console backed by Rich."""

    def __init__(self, *, _masker: _Masker | None = None, _prefix: str = "") -> None:
        # Import Rich lazily to keep service imports free of it
        from rich.console import Console

        self._console = Console(highlight=False)
        self._masker = _masker or _Masker()
        self._prefix = _prefix
        self._style_map = {
            Style.DEFAULT: "",
            Style.SUCCESS: "green",
            Style.ERROR: "red bold",
            Style.WARNING: "yellow",
            Style.INFO: "cyan",
            Style.DIM: "dim",
            Style.BOLD: "bold",
            Style.HEADER: "blue bold",
        }

    def _emit(self, markup: str, message: str, style: str = "") -> None:
        from rich.markup import escape

        text = escape(self._masker.apply(message))
        prefix = f"[magenta]\\[{escape(self._prefix)}][/magenta] " if self._prefix else ""
        with self._masker.lock:
            if style:
                self._console.print(f"{prefix}{markup}{text}", style=style)
            else:
                self._console.print(f"{prefix}{markup}{text}")

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        self._emit("", message, self._style_map.get(style, ""))

    def success(self, message: str) -> None:
        self._emit("[green]OK[/green] ", message)

    def error(self, message: str) -> None:
        self._emit("[red bold]error:[/red bold] ", message)

    def warning(self, message: str) -> None:
        self._emit("[yellow]warning:[/yellow] ", message)

    def info(self, message: str) -> None:
        self._emit("[cyan]info:[/cyan] ", message)

    def header(self, message: str) -> None:
        with self._masker.lock:
            self._console.print()
        self._emit("", message, "blue bold")

    def newline(self) -> None:
        with self._masker.lock:
            self._console.print()

    def table(
        self, title: str, columns: tuple[str, ...], rows: list[tuple[str, ...]]
    ) -> None:
        from rich.table import Table

        tbl = Table(title=self._masker.apply(title))
        for column in columns:
            tbl.add_column(column)
        for row in rows:
            tbl.add_row(*(self._masker.apply(cell) for cell in row))
        with self._masker.lock:
            self._console.print(tbl)

    def mask(self, secret: Secret) -> None:
        self._masker.add(secret)

    def for_job(self, job: str) -> RichConsole:
        return RichConsole(_masker=self._masker, _prefix=job)


@dataclass
class OutputRecord:
    """A single line captured by MockConsole."""

    message: str
    style: Style
    job: str = ""


def _empty_outputs() -> list[OutputRecord]:
    return []


@dataclass
class MockConsole:
    """Capturing console for tests.

    Job children append to the parent's ``outputs`` so a test sees the whole
    run in one place; ``for_job_text`` filters by job.
    """

    outputs: list[OutputRecord] = field(default_factory=_empty_outputs)
    job: str = ""
    _masker: _Masker = field(default_factory=_Masker, repr=False)

    def _add(self, message: str, style: Style) -> None:
        with self._masker.lock:
            self.outputs.append(OutputRecord(self._masker.apply(message), style, self.job))

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        self._add(message, style)

    def success(self, message: str) -> None:
        self._add(f"OK {message}", Style.SUCCESS)

    def error(self, message: str) -> None:
        self._add(f"error: {message}", Style.ERROR)

    def warning(self, message: str) -> None:
        self._add(f"warning: {message}", Style.WARNING)

    def info(self, message: str) -> None:
        self._add(f"info: {message}", Style.INFO)

    def header(self, message: str) -> None:
        self._add(message, Style.HEADER)

    def newline(self) -> None:
        self._add("", Style.DEFAULT)

    def table(
        self, title: str, columns: tuple[str, ...], rows: list[tuple[str, ...]]
    ) -> None:
        self._add(title, Style.HEADER)
        self._add(" | ".join(columns), Style.BOLD)
        for row in rows:
            self._add(" | ".join(row), Style.DEFAULT)

    def mask(self, secret: Secret) -> None:
        self._masker.add(secret)

    def for_job(self, job: str) -> MockConsole:
        return MockConsole(outputs=self.outputs, job=job, _masker=self._masker)

    # Test helpers

    def clear(self) -> None:
        self.outputs.clear()

    @property
    def messages(self) -> list[str]:
        return [o.message for o in self.outputs]

    @property
    def text(self) -> str:
        return "\n".join(self.messages)

    def for_job_text(self, job: str) -> str:
        return "\n".join(o.message for o in self.outputs if o.job == job)

    def has_error(self) -> bool:
        return any(o.style == Style.ERROR for o in self.outputs)

    def has_success(self) -> bool:
        return any(o.style == Style.SUCCESS for o in self.outputs)

    def find(self, substring: str) -> list[OutputRecord]:
        return [o for o in self.outputs if substring in o.message]
