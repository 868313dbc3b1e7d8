from __future__ import annotations

import re
from dataclasses import dataclass

# SemVer 2.0.0, as enforced by crates.io for package versions.
_SEMVER_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-((?:0|[1-9]\d*|\d*[A-Za-z-][0-9A-Za-z-]*)(?:\.(?:0|[1-9]\d*|\d*[A-Za-z-][0-9A-Za-z-]*))*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


@dataclass(frozen=True, slots=True)
class SemVer:
    major: int
    minor: int
    patch: int
    pre: str = ""
    build: str = ""

    def __str__(self) -> str:
        out = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre:
            out += f"-{self.pre}"
        if self.build:
            out += f"+{self.build}"
        return out

    @property
    def core(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)


def parse_version(raw: str) -> SemVer | None:
    m = _SEMVER_RE.match(raw.strip())
    if m is None:
        return None
    return SemVer(
        int(m.group(1)),
        int(m.group(2)),
        int(m.group(3)),
        pre=m.group(4) or "",
        build=m.group(5) or "",
    )


def parse_tag(tag: str) -> SemVer | None:
    """Version carried by a release tag: ``v1.2.0`` or ``1.2.0``."""
    raw = tag.strip()
    if raw[:1] in ("v", "V"):
        raw = raw[1:]
    return parse_version(raw)


def tag_matches_version(tag: str, version: str) -> bool:
    """True when the tag names exactly ``version`` (build metadata ignored)."""
    t = parse_tag(tag)
    v = parse_version(version)
    if t is None or v is None:
        return False
    return t.core == v.core and t.pre == v.pre
