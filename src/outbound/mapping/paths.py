"""Dotted-path traversal over nested dicts.

``MISSING`` marks "no value": an absent key, or a value a transform returned
to suppress its field. ``None`` is an ordinary, present value.
"""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping
from typing import Any


class _Missing:
    """Singleton sentinel type for absent values."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> _Missing:
        return self

    def __deepcopy__(self, memo: dict) -> _Missing:
        return self


MISSING: Any = _Missing()


def get_path(obj: Any, path: str) -> Any:
    """Read the value at a dotted path.

    Returns MISSING if any segment is absent, an intermediate value is not a
    mapping, or the stored value is MISSING. A stored None is returned as-is.
    """
    current = obj
    for key in path.split("."):
        if not isinstance(current, Mapping):
            return MISSING
        current = current.get(key, MISSING)
        if current is MISSING:
            return MISSING
    return current


def set_path(obj: MutableMapping[str, Any], path: str, value: Any) -> None:
    """Write a value at a dotted path, creating intermediate dicts.

    An intermediate segment holding a non-dict value is replaced with a
    fresh dict.
    """
    *parents, last_key = path.split(".")
    target = obj
    for key in parents:
        child = target.get(key)
        if not isinstance(child, MutableMapping):
            child = {}
            target[key] = child
        target = child
    target[last_key] = value
