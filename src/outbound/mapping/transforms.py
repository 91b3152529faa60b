"""Reusable transform factories for field maps.

Each factory returns a plain callable usable either as a field transform
``(value, record)`` or as an after-transform ``(value, mapped, record)``;
extra positional arguments are ignored.

Example:
    global_after_transforms={
        "StageName": constant("Needs Analysis"),
        "CloseDate": iso_date(default_days=30),
        "CurrencyIsoCode": allowed_values({"USD", "COP"}, fallback="COP"),
    }
"""

from __future__ import annotations

from collections.abc import Callable, Collection, Mapping
from datetime import date, datetime, timedelta
from typing import Any

import structlog

from src.outbound.mapping.paths import MISSING, get_path

logger = structlog.get_logger(__name__)


def _is_blank(value: Any) -> bool:
    return value is MISSING or value is None or value == ""


def value_map(
    mapping: Mapping[Any, Any],
    default: Any = MISSING,
    normalize: Callable[[Any], Any] | None = None,
) -> Callable[..., Any]:
    """Translate picklist values between systems.

    Values not in ``mapping`` pass through unchanged unless ``default`` is
    given. ``normalize`` is applied to the value before lookup only.
    Blank values always pass through untouched.
    """

    def transform(value: Any, *_: Any) -> Any:
        if _is_blank(value):
            return value if default is MISSING else default
        key = normalize(value) if normalize else value
        if key in mapping:
            return mapping[key]
        return value if default is MISSING else default

    return transform


def constant(value: Any) -> Callable[..., Any]:
    """Always produce ``value``."""

    def transform(*_: Any) -> Any:
        return value

    return transform


def default_if_blank(default: Any) -> Callable[..., Any]:
    """Replace MISSING, None or empty string with ``default``."""

    def transform(value: Any, *_: Any) -> Any:
        return default if _is_blank(value) else value

    return transform


def allowed_values(values: Collection[Any], fallback: Any) -> Callable[..., Any]:
    """Restrict a field to ``values``; anything else becomes ``fallback``.

    MISSING and None yield MISSING so the field stays out of the payload.
    """

    def transform(value: Any, *_: Any) -> Any:
        if value is MISSING or value is None:
            return MISSING
        if value in values:
            return value
        logger.warning("transform.value_not_allowed", value=value, fallback=fallback)
        return fallback

    return transform


def iso_date(default_days: int | None = None) -> Callable[..., Any]:
    """Format a date/datetime or ISO string as ``YYYY-MM-DD``.

    Unparseable or blank input falls back to today plus ``default_days``
    when given, otherwise to MISSING.
    """

    def transform(value: Any, *_: Any) -> Any:
        parsed = _parse_date(value)
        if parsed is not None:
            return parsed.isoformat()
        if default_days is None:
            return MISSING
        return (date.today() + timedelta(days=default_days)).isoformat()

    return transform


def from_mapped(
    path: str,
    lookup: Mapping[Any, Any],
    default: Any = MISSING,
) -> Callable[..., Any]:
    """After-transform deriving a value from a sibling field of the payload.

    Keeps a non-blank current value; otherwise looks up the value found at
    ``path`` in the mapped payload, e.g. a default hotel for a city.
    """

    def transform(value: Any, mapped: Mapping[str, Any] | None = None, *_: Any) -> Any:
        if not _is_blank(value):
            return value
        sibling = get_path(mapped or {}, path)
        return lookup.get(sibling, default)

    return transform


def _parse_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip().replace("Z", "+00:00")
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            try:
                return date.fromisoformat(text[:10])
            except ValueError:
                return None
    return None
