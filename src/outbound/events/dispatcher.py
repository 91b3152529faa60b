"""In-process lifecycle event dispatcher.

Keeps a registry of ``"<ObjectType>.<EventName>"`` -> ordered handler list
and runs the handlers of exactly one event per ``init()`` call. This is a
single-shot dispatcher for one process invocation, not a long-running loop.

Handlers for one key run strictly in registration order; an async handler
is awaited before the next one starts. How a failing handler affects the
rest of the chain depends on the error mode (see ErrorMode).
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Iterable
from typing import Any

import structlog

from src.outbound.core.monitoring import record_dispatch, record_handler_failure
from src.outbound.errors import DispatchError
from src.outbound.integration.schemas import (
    DispatcherStats,
    DispatchFailure,
    DispatchResult,
    ErrorMode,
    EventHandlerCount,
)

logger = structlog.get_logger(__name__)

EventHandler = Callable[[Any], Any]
ErrorCallback = Callable[[DispatchFailure], None]


class EventDispatcher:
    """Publish/subscribe registry for lifecycle events.

    Args:
        allowed_sources: Object types allowed to register handlers. None
            allows every object type.
        error_mode: Failure propagation mode for handler errors.
        on_error: Called with each DispatchFailure as it is recorded.
    """

    def __init__(
        self,
        allowed_sources: Iterable[str] | None = None,
        error_mode: ErrorMode | str = ErrorMode.IMMEDIATE,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._allowed_sources = set(allowed_sources) if allowed_sources is not None else None
        self._error_mode = ErrorMode(error_mode)
        self._on_error = on_error
        self._current_event_name: str | None = None
        self._initialized = False

    # ── Registration ───────────────────────────────────────────────────────

    def on(self, event_key: str, handler: EventHandler) -> EventDispatcher:
        """Append a handler for an event key.

        Keys whose object type is not in the allow-list are ignored.
        """
        object_type = event_key.split(".", 1)[0]
        if self._allowed_sources is not None and object_type not in self._allowed_sources:
            logger.warning(
                "dispatch.handler_ignored",
                event_key=event_key,
                object_type=object_type,
                allowed_sources=sorted(self._allowed_sources),
            )
            return self
        self._handlers.setdefault(event_key, []).append(handler)
        logger.debug("dispatch.handler_registered", event_key=event_key)
        return self

    def off(self, event_key: str, handler: EventHandler) -> EventDispatcher:
        """Remove a specific handler from an event key."""
        if event_key in self._handlers:
            self._handlers[event_key] = [h for h in self._handlers[event_key] if h is not handler]
        return self

    def clear(self) -> EventDispatcher:
        """Remove every registered handler."""
        self._handlers = {}
        return self

    # ── Execution ──────────────────────────────────────────────────────────

    async def trigger(self, event_key: str, payload: Any = None) -> DispatchResult:
        """Run every handler for ``event_key`` sequentially.

        Args:
            event_key: Registry key to run.
            payload: Passed to each handler as its only argument.

        Returns:
            DispatchResult with the number of handlers run and any failures.

        Raises:
            DispatchError: On the first failure when the error mode is IMMEDIATE.
        """
        result = DispatchResult(event_key=event_key)
        handlers = list(self._handlers.get(event_key, ()))
        if not handlers:
            return result

        record_dispatch(event_key)
        for index, handler in enumerate(handlers, start=1):
            result.handlers_run += 1
            try:
                outcome = handler(payload)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as exc:
                self._handle_error(exc, event_key, index, result)

        logger.info(
            "dispatch.completed",
            event_key=event_key,
            handlers_run=result.handlers_run,
            failures=len(result.failures),
        )
        return result

    async def init(self, event_name: str, payload: Any = None) -> DispatchResult | None:
        """Dispatch the current event once.

        A second call on the same dispatcher is a no-op returning None.

        Args:
            event_name: Key of the event that happened, e.g. "Company.afterCreate".
            payload: Passed to each handler.

        Returns:
            The DispatchResult; empty when nothing is registered for the key.
        """
        if self._initialized:
            logger.debug("dispatch.already_initialized", event_name=event_name)
            return None
        self._initialized = True
        self._current_event_name = event_name

        if not self.has_handlers(event_name):
            logger.info("dispatch.no_handlers", event_name=event_name)
            return DispatchResult(event_key=event_name)
        return await self.trigger(event_name, payload)

    def _handle_error(
        self,
        error: Exception,
        event_key: str,
        handler_index: int,
        result: DispatchResult,
    ) -> None:
        failure = DispatchFailure(
            event_key=event_key,
            handler_index=handler_index,
            error=str(error),
            error_type=type(error).__name__,
            exception=error,
        )
        result.failures.append(failure)
        record_handler_failure(event_key, self._error_mode.value)
        logger.error(
            "dispatch.handler_failed",
            event_key=event_key,
            handler_index=handler_index,
            error=str(error),
            error_mode=self._error_mode.value,
        )
        if self._on_error is not None:
            self._on_error(failure)

        dispatch_error = DispatchError(event_key, handler_index, error)

        if self._error_mode == ErrorMode.IMMEDIATE:
            raise dispatch_error from error
        if self._error_mode == ErrorMode.DELAYED:
            dispatch_error.__cause__ = error
            asyncio.get_running_loop().call_soon(_reraise, dispatch_error)

    # ── Introspection ──────────────────────────────────────────────────────

    @property
    def error_mode(self) -> ErrorMode:
        return self._error_mode

    def set_error_mode(self, mode: ErrorMode | str) -> EventDispatcher:
        self._error_mode = ErrorMode(mode)
        return self

    @property
    def current_event_name(self) -> str | None:
        """Event name passed to init(), or None before init."""
        return self._current_event_name

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def has_handlers(self, event_key: str) -> bool:
        return bool(self._handlers.get(event_key))

    def events(self) -> list[EventHandlerCount]:
        return [
            EventHandlerCount(event=key, handler_count=len(handlers))
            for key, handlers in self._handlers.items()
        ]

    def get_stats(self) -> DispatcherStats:
        event_list = self.events()
        return DispatcherStats(
            events=len(event_list),
            total_handlers=sum(e.handler_count for e in event_list),
            event_list=event_list,
        )


def _reraise(error: Exception) -> None:
    raise error
