"""Outbound integration entry point wiring configs to the event dispatcher.

Usage from a driver script:

    integration = OutboundIntegration(configs)
    await integration.initialize("Company.afterCreate", EventContext(...))

The constructor validates every config and fails fast with ConfigError.
initialize() registers one dispatcher entry per active config/event pair and
runs the handlers of the single event that happened.
"""

from __future__ import annotations

import inspect
from collections.abc import Sequence
from typing import Any

import structlog

from src.outbound.config import get_settings
from src.outbound.core.logging import event_log_context
from src.outbound.errors import ConfigError
from src.outbound.events.dispatcher import EventDispatcher
from src.outbound.integration.schemas import (
    DispatchResult,
    EventConfig,
    EventContext,
    IntegrationConfig,
)
from src.outbound.integration.validator import validate_configs

logger = structlog.get_logger(__name__)


class OutboundIntegration:
    """Composes config validation, event registration and dispatch.

    Args:
        configs: Raw or validated integration configs.
        dispatcher: Optional dispatcher; by default a fresh one is built from
            settings so every integration run starts with an empty registry.

    Raises:
        ConfigError: If the configs fail validation.
    """

    def __init__(
        self,
        configs: Sequence[Any],
        dispatcher: EventDispatcher | None = None,
    ) -> None:
        try:
            self._configs = validate_configs(configs)
        except ConfigError as exc:
            raise ConfigError(f"OutboundIntegration validation failed: {exc}") from exc
        self._dispatcher = dispatcher or _dispatcher_from_settings()
        self._registered = False

    @property
    def configs(self) -> list[IntegrationConfig]:
        return list(self._configs)

    @property
    def dispatcher(self) -> EventDispatcher:
        return self._dispatcher

    def register_events(self) -> None:
        """Register a handler wrapper for every event of every active config.

        Only the first call registers; later calls are no-ops.
        """
        if self._registered:
            return
        self._registered = True
        for config in self._configs:
            if not config.active:
                logger.debug("outbound.config_inactive", source=config.source)
                continue
            for event in config.events:
                self._dispatcher.on(config.event_key(event), self._make_runner(config, event))

    async def initialize(
        self,
        event_name: str,
        context: EventContext | None = None,
    ) -> DispatchResult | None:
        """Register events and dispatch the current one.

        Resolves once the matching handler chain has completed, or failed per
        the dispatcher's error mode. An event nobody registered for resolves
        without running any handler.
        """
        if context is None:
            context = EventContext(event_name=event_name)
        self.register_events()
        with event_log_context(event_name):
            return await self._dispatcher.init(event_name, context)

    # ── Lookups ────────────────────────────────────────────────────────────

    def get_config(self, source: str) -> IntegrationConfig | None:
        return next((c for c in self._configs if c.source == source), None)

    def get_event_config(self, source: str, event_name: str) -> EventConfig | None:
        config = self.get_config(source)
        if config is None:
            return None
        return next((e for e in config.events if e.name.value == event_name), None)

    def get_active_configs(self) -> list[IntegrationConfig]:
        return [c for c in self._configs if c.active]

    # ── Internals ──────────────────────────────────────────────────────────

    @staticmethod
    def _make_runner(config: IntegrationConfig, event: EventConfig):
        event_key = config.event_key(event)

        async def run(context: EventContext) -> Any:
            try:
                result = event.handler(config.source, config, event, context)
                if inspect.isawaitable(result):
                    result = await result
                return result
            except Exception as exc:
                logger.error(
                    "outbound.handler_failed",
                    event_key=event_key,
                    source=config.source,
                    target=config.target,
                    lifecycle_event=event.name.value,
                    error=str(exc),
                )
                raise

        return run


def _dispatcher_from_settings() -> EventDispatcher:
    settings = get_settings()
    return EventDispatcher(
        allowed_sources=settings.get_lifecycle_sources(),
        error_mode=settings.OUTBOUND_ERROR_MODE,
    )
