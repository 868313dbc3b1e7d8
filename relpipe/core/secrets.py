"""Opaque secret values.

Tokens are read once at the CLI edge and handed to the component that needs
them. A ``Secret`` never renders its value through ``str``/``repr``/format, so
it cannot leak into console output, error hints or dataclass reprs by
accident; only ``reveal()`` returns the raw token.
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable, Mapping

__all__ = ["Secret", "child_environ", "secret_from_env"]

_MASK = "***"

# Credential variables never handed to a child process unless a job adds its own.
_CREDENTIAL_VARS = ("GITHUB_TOKEN", "GH_TOKEN", "CARGO_REGISTRY_TOKEN")
_REGISTRY_TOKEN_RE = re.compile(r"^CARGO_REGISTRIES_[A-Z0-9_]+_TOKEN$")


class Secret:
    __slots__ = ("_value", "_label")

    def __init__(self, value: str, *, label: str = "secret") -> None:
        self._value = value
        self._label = label

    @property
    def label(self) -> str:
        return self._label

    def reveal(self) -> str:
        return self._value

    def __bool__(self) -> bool:
        return bool(self._value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Secret):
            return NotImplemented
        return self._value == other._value

    def __hash__(self) -> int:
        return hash(self._value)

    def __repr__(self) -> str:
        return f"Secret({self._label}={_MASK})"

    def __str__(self) -> str:
        return _MASK

    def __format__(self, format_spec: str) -> str:
        return _MASK


def secret_from_env(name: str, *, env: dict[str, str] | None = None) -> Secret | None:
    """Read ``name`` from the environment; None when unset or blank."""
    source = os.environ if env is None else env
    value = source.get(name, "").strip()
    if not value:
        return None
    return Secret(value, label=name)


def child_environ(
    drop: Iterable[str] = (), *, env: Mapping[str, str] | None = None
) -> dict[str, str]:
    """Copy of the environment for subprocesses, minus every credential variable.

    ``drop`` names extra variables to remove (configured token names). A job
    that needs a credential adds it back explicitly to its own copy.
    """
    source = os.environ if env is None else env
    removed = {*_CREDENTIAL_VARS, *drop}
    return {
        key: value
        for key, value in source.items()
        if key not in removed and not _REGISTRY_TOKEN_RE.match(key)
    }
