"""Operating systems and architectures a project can be built for.

These enums describe *build targets*, not the machine relpipe runs on;
``detect_host`` decides which targets this machine can link at all.
"""

from __future__ import annotations

import platform as _platform
import sys as _sys
from enum import Enum

__all__ = ["Os", "Arch", "detect_host"]


class Os(Enum):
    """Target operating system."""

    LINUX = "linux"
    MACOS = "macos"
    WINDOWS = "windows"

    def __str__(self) -> str:
        return self.value

    @property
    def is_unix(self) -> bool:
        return self in (Os.LINUX, Os.MACOS)

    @property
    def exe_suffix(self) -> str:
        return ".exe" if self == Os.WINDOWS else ""

    def exe_name(self, name: str) -> str:
        """Executable file name for this OS: ``dotter`` -> ``dotter.exe`` on Windows."""
        return f"{name}{self.exe_suffix}"

    @classmethod
    def parse(cls, raw: str) -> Os | None:
        key = raw.strip().lower()
        aliases = {"darwin": "macos", "osx": "macos", "win": "windows", "win32": "windows"}
        key = aliases.get(key, key)
        for member in cls:
            if member.value == key:
                return member
        return None


class Arch(Enum):
    """Target CPU architecture."""

    X64 = "x64"
    ARM64 = "arm64"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, raw: str) -> Arch | None:
        key = raw.strip().lower()
        aliases = {"x86_64": "x64", "amd64": "x64", "aarch64": "arm64"}
        key = aliases.get(key, key)
        for member in cls:
            if member.value == key:
                return member
        return None


def detect_host() -> tuple[Os | None, Arch | None]:
    """(os, arch) of the running machine, None for anything unrecognized."""
    if _sys.platform.startswith("linux"):
        host_os: Os | None = Os.LINUX
    elif _sys.platform == "darwin":
        host_os = Os.MACOS
    elif _sys.platform in ("win32", "cygwin"):
        host_os = Os.WINDOWS
    else:
        host_os = None
    return host_os, Arch.parse(_platform.machine())
