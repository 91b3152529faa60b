"""Client interfaces for the two systems an outbound integration talks to.

The engine never speaks HTTP itself. Driver scripts pass concrete clients
(REST wrappers with auth, token refresh and retries) implementing these
ABCs to RecordHandlers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.outbound.integration.schemas import FindResult


class SourceClient(ABC):
    """Interface to the system that emits lifecycle events."""

    @abstractmethod
    async def find_one(
        self, object_type: str, record_id: str, select: str | None = None
    ) -> dict[str, Any] | None:
        """Fetch a record by ID, or None if it does not exist."""
        ...

    @abstractmethod
    async def create(self, object_type: str, data: dict[str, Any]) -> dict[str, Any]:
        """Create a record and return it."""
        ...

    @abstractmethod
    async def update(self, object_type: str, record_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        """Apply a partial update and return the updated record."""
        ...

    @abstractmethod
    async def delete(self, object_type: str, record_id: str) -> None:
        """Delete a record."""
        ...


class TargetClient(ABC):
    """Interface to the CRM that receives mapped payloads."""

    @abstractmethod
    async def create(self, object_type: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Create a record; the result carries at least ``id``."""
        ...

    @abstractmethod
    async def update(self, object_type: str, record_id: str, payload: dict[str, Any]) -> None:
        """Update a record by ID."""
        ...

    @abstractmethod
    async def find(
        self,
        object_type: str,
        where: dict[str, Any],
        limit: int | None = None,
        select: str | None = None,
    ) -> FindResult:
        """Query records matching equality filters."""
        ...

    @abstractmethod
    async def find_one(
        self, object_type: str, record_id: str, select: str | None = None
    ) -> dict[str, Any] | None:
        """Fetch a record by ID, or None if it does not exist."""
        ...

    @abstractmethod
    async def delete(self, object_type: str, record_id: str) -> None:
        """Delete a record by ID."""
        ...

    @abstractmethod
    def ref_data(self, object_type: str, record_id: str) -> dict[str, Any]:
        """Reference fields to write back on the source record (refId, refUrl)."""
        ...
