"""Record mapping engine: source record -> target-shaped payload.

Mapping flow for one record:
1. Split the field map into field mappings and inline transforms; caller
   transforms override inline ones on key collision.
2. Read every source path. Fields whose value is MISSING are skipped.
3. Settle every field through one coroutine: no transform passes the value
   through, a transform may return a plain value or an awaitable, and a
   failure drops only that field.
4. Gather all fields concurrently, then write the results in map order.
5. Run after-transforms on the built payload (same settle-gather-write
   pattern); they see sibling fields and the original record.

Every call builds a fresh payload and never mutates the input record.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from src.outbound.core.monitoring import record_transform_failure, track_mapping
from src.outbound.errors import MappingError, TransformError
from src.outbound.integration.schemas import EventConfig, FieldMap, IntegrationConfig, TransformFn
from src.outbound.integration.validator import resolve_transforms
from src.outbound.mapping.paths import MISSING, get_path, set_path

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class _FieldOperation:
    """One resolved map entry."""

    source_path: str
    target_path: str
    transform_key: str
    value: Any


@dataclass(frozen=True)
class _FieldOutcome:
    """Settled result of one field.

    kind is "direct" (no transform), "transformed" or "error".
    """

    kind: str
    target_path: str
    value: Any = MISSING


# ── Public API ──────────────────────────────────────────────────────────────


async def map_with_config(
    data: Mapping[str, Any],
    config: IntegrationConfig,
    event: EventConfig,
    *,
    reverse: bool = False,
) -> dict[str, Any]:
    """Map a record using a validated config and one of its events.

    Hook order: global pre-mapping, event pre-mapping, core mapping, event
    post-mapping, global post-mapping. Hooks are best-effort: a failing hook
    is logged and the mapping carries on.

    Args:
        data: Source record.
        config: Validated integration config.
        event: Event config the mapping runs for.
        reverse: Map target paths back onto source paths.

    Returns:
        The target-shaped payload.

    Raises:
        MappingError: If config or event is missing, or data is not a mapping.
    """
    if config is None or event is None:
        raise MappingError("map_with_config: config and event are required")

    await _run_hook("global_pre_mapping", config.global_pre_mapping, data, config, event)
    await _run_hook("pre_mapping", event.pre_mapping, data, config, event)

    resolved = resolve_transforms(config, event)
    mapped = await _process_mapping(
        data,
        config.map,
        reverse=reverse,
        transforms=resolved.transforms,
        after_transforms=resolved.after_transforms,
    )

    await _run_hook("post_mapping", event.post_mapping, data, config, event, mapped)
    await _run_hook("global_post_mapping", config.global_post_mapping, data, config, event, mapped)

    return mapped


async def map_data(
    data: Mapping[str, Any],
    field_map: FieldMap | Mapping[str, Any],
    *,
    reverse: bool = False,
    transforms: Mapping[str, TransformFn] | None = None,
    after_transforms: Mapping[str, TransformFn] | None = None,
) -> dict[str, Any]:
    """Map a record without a config/event pair.

    ``field_map`` may be a FieldMap or a plain dict whose reserved
    ``transforms`` key carries inline transforms.

    Raises:
        MappingError: If data or field_map is not a mapping.
    """
    return await _process_mapping(
        data,
        field_map,
        reverse=reverse,
        transforms=transforms or {},
        after_transforms=after_transforms or {},
    )


# ── Core Mapping ────────────────────────────────────────────────────────────


async def _process_mapping(
    data: Any,
    field_map: Any,
    *,
    reverse: bool,
    transforms: Mapping[str, TransformFn],
    after_transforms: Mapping[str, TransformFn],
) -> dict[str, Any]:
    if not isinstance(data, Mapping):
        raise MappingError("data must be a valid object")
    fields, map_transforms = _split_field_map(field_map)
    all_transforms = {**map_transforms, **transforms}

    async with track_mapping():
        operations = [
            _resolve_operation(data, source_key, target_key, reverse)
            for source_key, target_key in fields.items()
        ]
        pending = [op for op in operations if op.value is not MISSING]

        outcomes = await asyncio.gather(
            *(
                _settle_field(op, all_transforms.get(op.transform_key), data)
                for op in pending
            )
        )

        result: dict[str, Any] = {}
        for outcome in outcomes:
            if outcome.kind != "error" and outcome.value is not MISSING:
                set_path(result, outcome.target_path, outcome.value)

        if after_transforms:
            await _apply_after_transforms(result, after_transforms, data)

    logger.debug(
        "mapping.completed",
        fields=len(fields),
        mapped=len(pending),
        reverse=reverse,
    )
    return result


def _split_field_map(field_map: Any) -> tuple[Mapping[str, Any], Mapping[str, Any]]:
    if isinstance(field_map, FieldMap):
        return field_map.fields, field_map.transforms
    if not isinstance(field_map, Mapping):
        raise MappingError("map must be a valid mapping object")
    split = FieldMap.split(field_map)
    inline = split["transforms"]
    if not isinstance(inline, Mapping):
        raise MappingError("map transforms must be a mapping of functions")
    return split["fields"], inline


def _resolve_operation(
    data: Mapping[str, Any],
    source_key: str,
    target_key: str,
    reverse: bool,
) -> _FieldOperation:
    if reverse:
        source_path, target_path, transform_key = target_key, source_key, source_key
    else:
        source_path, target_path, transform_key = source_key, target_key, target_key
    return _FieldOperation(
        source_path=source_path,
        target_path=target_path,
        transform_key=transform_key,
        value=get_path(data, source_path),
    )


async def _settle_field(
    op: _FieldOperation,
    transform: TransformFn | None,
    data: Mapping[str, Any],
) -> _FieldOutcome:
    """Apply a field's transform, awaiting it if needed. Never raises."""
    if not callable(transform):
        return _FieldOutcome(kind="direct", target_path=op.target_path, value=op.value)
    try:
        value = await _call(transform, op.value, data)
    except Exception as exc:
        _log_transform_error(TransformError(op.target_path, exc))
        return _FieldOutcome(kind="error", target_path=op.target_path)
    return _FieldOutcome(kind="transformed", target_path=op.target_path, value=value)


# ── After-Transforms ────────────────────────────────────────────────────────


async def _apply_after_transforms(
    mapped: dict[str, Any],
    after_transforms: Mapping[str, TransformFn],
    original: Mapping[str, Any],
) -> dict[str, Any]:
    """Run after-transforms on the built payload and write their results.

    Each transform receives the current value at its path (MISSING if
    absent), the whole payload and the original record. All of them settle
    before any write, so every transform reads the same snapshot. A failure
    or a MISSING result leaves the prior value untouched.
    """
    entries: list[tuple[str, TransformFn]] = []
    for field_path, transform in after_transforms.items():
        if not callable(transform):
            logger.warning("mapping.after_transform_not_callable", field=field_path)
            continue
        entries.append((field_path, transform))

    async def settle(field_path: str, transform: TransformFn) -> tuple[str, Any]:
        current = get_path(mapped, field_path)
        try:
            return field_path, await _call(transform, current, mapped, original)
        except Exception as exc:
            _log_transform_error(TransformError(field_path, exc, phase="after_transform"))
            return field_path, MISSING

    settled = await asyncio.gather(*(settle(path, fn) for path, fn in entries))

    for field_path, value in settled:
        if value is not MISSING:
            set_path(mapped, field_path, value)
    return mapped


# ── Helpers ─────────────────────────────────────────────────────────────────


async def _call(fn: Any, *args: Any) -> Any:
    """Call a sync or async function and return its settled result."""
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


async def _run_hook(name: str, hook: Any, *args: Any) -> None:
    if hook is None:
        return
    try:
        await _call(hook, *args)
    except Exception as exc:
        logger.error("mapping.hook_failed", hook=name, error=str(exc), exc_info=True)


def _log_transform_error(error: TransformError) -> None:
    record_transform_failure(error.phase)
    logger.error(
        "mapping.transform_failed",
        field=error.field_path,
        phase=error.phase,
        error=str(error.original_error),
        exc_info=error.original_error,
    )
