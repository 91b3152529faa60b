"""Error taxonomy for the outbound integration engine.

- ConfigError: schema/shape violations at setup time (fatal).
- MappingError: invalid data/map arguments to a single mapping call.
- TransformError: one field's transform failed; logged, the field is dropped.
- DispatchError: a handler failed while an event was being executed.
"""

from __future__ import annotations


class OutboundError(Exception):
    """Base class for all outbound integration errors."""


class ConfigError(OutboundError):
    """Raised when integration configuration fails validation."""


class MappingError(OutboundError):
    """Raised when a mapping call receives invalid data or map arguments."""


class TransformError(OutboundError):
    """A per-field transform raised or its awaitable rejected.

    Never raised out of a mapping call. The mapper builds one of these for
    logging and drops the field from the output.

    Attributes:
        field_path: Dotted target path the transform was producing.
        phase: "transform" for the mapping pass, "after_transform" for the
            post-mapping pass.
        original_error: The underlying exception.
    """

    def __init__(self, field_path: str, original_error: BaseException, phase: str = "transform") -> None:
        self.field_path = field_path
        self.phase = phase
        self.original_error = original_error
        super().__init__(f"{phase} failed for field '{field_path}': {original_error}")


class DispatchError(OutboundError):
    """Raised when an event handler fails under the immediate error mode.

    Attributes:
        event_key: Registry key, e.g. "Company.afterCreate".
        handler_index: 1-based position of the failing handler.
        original_error: The underlying exception.
    """

    def __init__(self, event_key: str, handler_index: int, original_error: BaseException) -> None:
        self.event_key = event_key
        self.handler_index = handler_index
        self.original_error = original_error
        super().__init__(
            f"Handler #{handler_index} for '{event_key}' failed: {original_error}"
        )
