"""Narrowing helpers for untyped TOML/JSON payloads.

Event payloads, API responses and ``relpipe.toml`` all arrive as ``object``;
these helpers validate shape at runtime and narrow types for the checker.
"""

from __future__ import annotations

from typing import Mapping, TypeGuard, cast

StrDict = dict[str, object]
ObjList = list[object]


def is_str_dict(obj: object) -> TypeGuard[StrDict]:
    if not isinstance(obj, dict):
        return False
    d = cast(dict[object, object], obj)
    return all(isinstance(k, str) for k in d.keys())


def as_str_dict(obj: object) -> StrDict | None:
    if is_str_dict(obj):
        return obj
    return None


def as_obj_list(obj: object) -> ObjList | None:
    if isinstance(obj, list):
        return cast(ObjList, obj)
    return None


def get_str(table: Mapping[str, object], key: str) -> str | None:
    """Stripped string value, or None when missing, not a str, or blank."""
    value = table.get(key)
    if not isinstance(value, str):
        return None
    s = value.strip()
    return s or None


def get_int(table: Mapping[str, object], key: str) -> int | None:
    value = table.get(key)
    # bool is an int subclass; a TOML `true` is not a count.
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def get_bool(table: Mapping[str, object], key: str) -> bool | None:
    value = table.get(key)
    if isinstance(value, bool):
        return value
    return None


def get_table(table: Mapping[str, object], key: str) -> StrDict | None:
    return as_str_dict(table.get(key))


def get_list(table: Mapping[str, object], key: str) -> ObjList | None:
    return as_obj_list(table.get(key))


def get_str_list(table: Mapping[str, object], key: str) -> list[str] | None:
    """List of strings, or None if missing or any item is not a string."""
    raw = get_list(table, key)
    if raw is None:
        return None
    out: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            return None
        out.append(item)
    return out
