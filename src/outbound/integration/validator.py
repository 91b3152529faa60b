"""Validation and normalization of outbound integration configs.

Raw configs (plain dicts with functions as values) are validated into frozen
IntegrationConfig models. Pydantic does the structural work; this module turns
its errors into short ConfigError messages that name the offending field:

    Error in config[1] (Contact): Error in events[0]: Required field 'handler' is missing
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError

from src.outbound.errors import ConfigError
from src.outbound.integration.schemas import (
    EventConfig,
    IntegrationConfig,
    LifecycleEvent,
    ResolvedTransforms,
)

logger = structlog.get_logger(__name__)

_REQUIRED_FIELDS = {"source", "target", "map", "events", "name", "handler"}

_TYPE_NAMES = {
    "string_type": "a string",
    "bool_type": "a boolean",
    "dict_type": "an object",
    "model_type": "an object",
    "model_attributes_type": "an object",
    "callable_type": "a function",
    "list_type": "an array",
}


def validate_configs(configs: Sequence[Any]) -> list[IntegrationConfig]:
    """Validate an array of integration configs.

    Args:
        configs: Raw config dicts or already-validated IntegrationConfig models.

    Returns:
        New validated configs, one per input, in input order.

    Raises:
        ConfigError: If the input is not a non-empty list, any item is invalid,
            or two configs share the same source.
    """
    if not isinstance(configs, (list, tuple)):
        raise ConfigError("ConfigValidator: configs must be an array")
    if not configs:
        raise ConfigError("ConfigValidator: configs array cannot be empty")

    validated: list[IntegrationConfig] = []
    for index, config in enumerate(configs):
        try:
            validated.append(validate_config(config))
        except ConfigError as exc:
            source = _source_of(config)
            raise ConfigError(
                f"ConfigValidator: Error in config[{index}] ({source}): {exc}"
            ) from exc

    sources = [config.source for config in validated]
    duplicates = sorted({s for s in sources if sources.count(s) > 1}, key=sources.index)
    if duplicates:
        raise ConfigError(
            f"ConfigValidator: Duplicate source found: {', '.join(duplicates)}"
        )

    logger.debug("config.validated", count=len(validated), sources=sources)
    return validated


def validate_config(config: Any) -> IntegrationConfig:
    """Validate a single integration config.

    Raises:
        ConfigError: With the first problem found, e.g.
            ``Field 'active' must be a boolean``.
    """
    if isinstance(config, IntegrationConfig):
        return config
    if not isinstance(config, Mapping):
        raise ConfigError("Config must be a valid object")
    return _validate(IntegrationConfig, config)


def validate_event(event: Any) -> EventConfig:
    """Validate a single event config.

    Raises:
        ConfigError: If the event is malformed.
    """
    if isinstance(event, EventConfig):
        return event
    if not isinstance(event, Mapping):
        raise ConfigError("Event must be a valid object")
    return _validate(EventConfig, event)


def resolve_transforms(config: IntegrationConfig, event: EventConfig) -> ResolvedTransforms:
    """Transform sets in effect for an event.

    A non-empty event-level set replaces the config's global set entirely
    (override, not merge). The same rule applies to after-transforms.
    Returns fresh dicts; the config is never touched.
    """
    transforms = event.transforms or config.global_transforms
    after_transforms = event.after_transforms or config.global_after_transforms
    return ResolvedTransforms(
        transforms=dict(transforms),
        after_transforms=dict(after_transforms),
    )


# ── Error Translation ───────────────────────────────────────────────────────


def _validate(model: type[BaseModel], raw: Mapping[str, Any]) -> Any:
    try:
        return model.model_validate(dict(raw))
    except ValidationError as exc:
        raise ConfigError(_describe(exc.errors()[0])) from exc


def _describe(error: Mapping[str, Any]) -> str:
    """Turn one pydantic error dict into a short message."""
    loc = list(error.get("loc", ()))

    if len(loc) >= 2 and loc[0] == "events" and isinstance(loc[1], int):
        inner = dict(error, loc=tuple(loc[2:]))
        if not loc[2:]:
            reason = "Event must be a valid object"
        else:
            reason = _describe(inner)
        return f"Error in events[{loc[1]}]: {reason}"

    error_type = error.get("type", "")
    field_name = ".".join(str(part) for part in loc)

    if error_type == "value_error" and "ctx" in error:
        return str(error["ctx"]["error"])
    if error_type == "missing" or (
        error.get("input") is None and len(loc) == 1 and loc[0] in _REQUIRED_FIELDS
    ):
        return f"Required field '{field_name}' is missing"
    if error_type == "too_short" and field_name == "events":
        return "events array cannot be empty"
    if error_type == "enum":
        allowed = ", ".join(e.value for e in LifecycleEvent)
        return f"Field '{field_name}' must be one of: {allowed}"
    if error_type in _TYPE_NAMES:
        return f"Field '{field_name}' must be {_TYPE_NAMES[error_type]}"
    return f"Field '{field_name}': {error.get('msg', 'invalid value')}"


def _source_of(config: Any) -> str:
    if isinstance(config, Mapping):
        source = config.get("source")
        if isinstance(source, str) and source:
            return source
    return "unknown"
