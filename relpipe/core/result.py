"""Result type used for every fallible pipeline step.

Jobs never raise to signal an expected failure: a build, an upload or a
registry push returns ``Ok(value)`` or ``Err(error)`` and the caller decides.

    match builder.build(target, project_dir=src, job_dir=job, console=console):
        case Ok(artifact):
            ...
        case Err(error):
            console.error(error.message)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeAlias, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    error: E

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result: TypeAlias = Union[Ok[T], Err[E]]
