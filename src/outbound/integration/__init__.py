"""Outbound integration layer -- config schemas, validation, orchestration, handlers.

Exports:
    IntegrationConfig / EventConfig / FieldMap: Validated configuration models.
    EventContext: The record and event a dispatch run is about.
    validate_configs / resolve_transforms: Configuration validator.
    OutboundIntegration: Entry point wiring configs to the event dispatcher.
    RecordHandlers: Standard create/update/delete handlers.
    SourceClient / TargetClient: Interfaces of the external systems.
"""

from __future__ import annotations

from src.outbound.integration.schemas import (
    EventConfig,
    EventContext,
    FieldMap,
    IntegrationConfig,
    LifecycleEvent,
)
from src.outbound.integration.validator import resolve_transforms, validate_configs

__all__ = [
    "EventConfig",
    "EventContext",
    "FieldMap",
    "IntegrationConfig",
    "LifecycleEvent",
    "OutboundIntegration",
    "RecordHandlers",
    "SourceClient",
    "TargetClient",
    "resolve_transforms",
    "validate_configs",
]


def __getattr__(name: str):  # noqa: N807
    """Lazy-load orchestrator, handlers and clients to avoid circular imports."""
    if name == "OutboundIntegration":
        from src.outbound.integration.outbound import OutboundIntegration

        return OutboundIntegration
    if name == "RecordHandlers":
        from src.outbound.integration.handlers import RecordHandlers

        return RecordHandlers
    if name in ("SourceClient", "TargetClient"):
        from src.outbound.integration import clients

        return getattr(clients, name)
    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
