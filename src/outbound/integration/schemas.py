"""Pydantic schemas for outbound integration -- configs, runtime context, dispatch results.

Defines all structured types for the outbound lifecycle:
- Enums: LifecycleEvent, ErrorMode
- Configuration: FieldMap, EventConfig, IntegrationConfig, ResolvedTransforms
- Runtime: EventContext (the record and event a dispatch run is about)
- Dispatch: DispatchFailure, DispatchResult, EventHandlerCount, DispatcherStats
- Target client results: FindResult

Configuration models are frozen: a validated config is never mutated, and
validating the same raw input twice yields equal models.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_validator, model_validator

# Reserved key of a plain-dict field map that carries inline transforms.
MAP_TRANSFORMS_KEY = "transforms"

TransformFn = Callable[..., Any]
HookFn = Callable[..., Any]
HandlerFn = Callable[..., Any]


# ── Enums ───────────────────────────────────────────────────────────────────


class LifecycleEvent(str, Enum):
    """Source-record lifecycle events a config can react to."""

    AFTER_CREATE = "afterCreate"
    AFTER_UPDATE = "afterUpdate"
    AFTER_DELETE = "afterDelete"


class ErrorMode(str, Enum):
    """How the dispatcher propagates a handler failure.

    IMMEDIATE re-raises and aborts the remaining handlers for the event.
    DELAYED re-raises on a later loop tick and keeps going.
    SILENT only records the failure.
    """

    IMMEDIATE = "immediate"
    DELAYED = "delayed"
    SILENT = "silent"


# ── Configuration ───────────────────────────────────────────────────────────


class FieldMap(BaseModel):
    """Source dotted path -> target dotted path, plus inline transforms.

    Inline transforms have the lowest precedence: config- or event-level
    transforms with the same key replace them.
    """

    model_config = ConfigDict(frozen=True)

    fields: dict[str, StrictStr]
    transforms: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def split(cls, raw: Mapping[str, Any]) -> dict[str, Any]:
        """Split a plain map holding a reserved ``transforms`` key into model input."""
        return {
            "fields": {k: v for k, v in raw.items() if k != MAP_TRANSFORMS_KEY},
            "transforms": raw.get(MAP_TRANSFORMS_KEY) or {},
        }


class EventConfig(BaseModel):
    """One lifecycle event of an integration config."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: LifecycleEvent
    handler: HandlerFn
    transforms: dict[str, Any] = Field(default_factory=dict)
    after_transforms: dict[str, Any] = Field(default_factory=dict)
    pre_mapping: HookFn | None = None
    post_mapping: HookFn | None = None


class IntegrationConfig(BaseModel):
    """Per-object outbound integration config.

    Attributes:
        source: Source object type, e.g. "Company". Unique across a config list.
        target: Target object type, e.g. "Account".
        active: Inactive configs are validated but never registered.
        map: Field map used by every event of this config.
        global_transforms: Default field transforms for all events.
            Entries that are not callable are skipped when mapping.
        global_after_transforms: Default after-transforms for all events.
        global_pre_mapping: Hook run before every mapping of this config.
        global_post_mapping: Hook run after every mapping of this config.
        events: Lifecycle events with their handlers. Names are unique.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    source: StrictStr
    target: StrictStr
    active: StrictBool = True
    map: FieldMap
    global_transforms: dict[str, Any] = Field(default_factory=dict)
    global_after_transforms: dict[str, Any] = Field(default_factory=dict)
    global_pre_mapping: HookFn | None = None
    global_post_mapping: HookFn | None = None
    events: list[EventConfig] = Field(min_length=1)

    @field_validator("map", mode="before")
    @classmethod
    def _split_map_transforms(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return FieldMap.split(value)
        return value

    @model_validator(mode="after")
    def _validate_unique_event_names(self) -> IntegrationConfig:
        names = [event.name.value for event in self.events]
        duplicates = sorted({name for name in names if names.count(name) > 1}, key=names.index)
        if duplicates:
            msg = f"Duplicate event names found: {', '.join(duplicates)}"
            raise ValueError(msg)
        return self

    def event_key(self, event: EventConfig) -> str:
        """Registry key for one of this config's events."""
        return f"{self.source}.{event.name.value}"


@dataclass(frozen=True)
class ResolvedTransforms:
    """Transform sets in effect for one config/event pair."""

    transforms: dict[str, Any] = field(default_factory=dict)
    after_transforms: dict[str, Any] = field(default_factory=dict)


# ── Runtime Context ─────────────────────────────────────────────────────────


class EventContext(BaseModel):
    """The record and event a single dispatch run is about.

    Attributes:
        event_name: Registry key of the event, e.g. "Deal.afterUpdate".
        doc: The full current source record.
        payload: Changed fields of an update.
        before_update_doc: The record as it was before an update.
    """

    event_name: str
    doc: dict[str, Any] = Field(default_factory=dict)
    payload: dict[str, Any] = Field(default_factory=dict)
    before_update_doc: dict[str, Any] | None = None

    @property
    def object_name(self) -> str:
        """Object type part of the event name."""
        return self.event_name.split(".", 1)[0]


# ── Dispatch Results ────────────────────────────────────────────────────────


class DispatchFailure(BaseModel):
    """One handler failure recorded during a dispatch call."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    event_key: str
    handler_index: int
    error: str
    error_type: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    exception: BaseException | None = Field(default=None, exclude=True, repr=False)


class DispatchResult(BaseModel):
    """Summary of one dispatch call."""

    event_key: str
    handlers_run: int = 0
    failures: list[DispatchFailure] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class EventHandlerCount(BaseModel):
    event: str
    handler_count: int


class DispatcherStats(BaseModel):
    """Registry statistics for debugging."""

    events: int
    total_handlers: int
    event_list: list[EventHandlerCount] = Field(default_factory=list)


# ── Target Client Results ───────────────────────────────────────────────────


class FindResult(BaseModel):
    """Result of a target-system query."""

    total_size: int = 0
    records: list[dict[str, Any]] = Field(default_factory=list)
