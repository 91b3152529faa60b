"""Standard lifecycle handlers built on the mapping engine.

RecordHandlers provides the handlers most integrations need:
- after_create: map, create in the target, write the reference back
- after_create_or_link: like after_create, but reuse an existing target
  record found by a match field (duplicate reconciliation)
- after_update: map the changed fields and update the referenced record
- after_delete: delete the referenced record

Handlers have the dispatcher signature ``(object_name, config, event, context)``
and can also be called directly with a custom context, e.g. from a transform
that needs a related record synced first.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.outbound.integration.clients import SourceClient, TargetClient
from src.outbound.integration.schemas import EventConfig, EventContext, IntegrationConfig, LifecycleEvent
from src.outbound.mapping.mapper import map_with_config

logger = structlog.get_logger(__name__)

REF_ID_FIELD = "refId"
DUPLICATE_MARKERS = ("duplicate", "DUPLICATE_VALUE", "ya existe")


def is_duplicate_error(error: BaseException) -> bool:
    """True if a target-system error reports a duplicate record."""
    message = str(error)
    return any(marker in message for marker in DUPLICATE_MARKERS)


class RecordHandlers:
    """Create/update/delete handlers for one source/target client pair.

    Args:
        source: Client for the system that emitted the event.
        target: Client for the CRM receiving mapped payloads.
        match_field: Payload field used to find an existing target record
            in after_create_or_link.
        id_field: Source record primary key.
    """

    def __init__(
        self,
        source: SourceClient,
        target: TargetClient,
        *,
        match_field: str = "Email",
        id_field: str = "_id",
    ) -> None:
        self._source = source
        self._target = target
        self._match_field = match_field
        self._id_field = id_field

    async def after_create(
        self,
        object_name: str,
        config: IntegrationConfig,
        event: EventConfig,
        context: EventContext,
    ) -> dict[str, Any]:
        """Create the target record and link it back to the source record.

        Returns:
            The mapped payload sent to the target.
        """
        data = context.doc
        mapped = await map_with_config(data, config, event)
        created = await self._target.create(config.target, mapped)
        logger.info(
            "handler.target_created",
            source=object_name,
            target=config.target,
            target_id=created.get("id"),
        )
        await self._link(object_name, data, config.target, created.get("id"), context)
        return mapped

    async def after_create_or_link(
        self,
        object_name: str,
        config: IntegrationConfig,
        event: EventConfig,
        context: EventContext,
    ) -> dict[str, Any]:
        """Find the target record by the match field, else create it.

        A create that fails because the record already exists (another run
        created it in between) triggers a second search; the record found is
        linked, otherwise the create error propagates.
        """
        data = context.doc
        mapped = await map_with_config(data, config, event)
        match_value = mapped.get(self._match_field)

        if not match_value:
            created = await self._target.create(config.target, mapped)
            await self._link(object_name, data, config.target, created.get("id"), context)
            return mapped

        target_id = await self._find_by_match(config.target, match_value)
        if target_id is not None:
            logger.info(
                "handler.target_matched",
                target=config.target,
                target_id=target_id,
                match_field=self._match_field,
            )
            try:
                await self._target.update(config.target, target_id, mapped)
            except Exception as exc:
                logger.warning("handler.target_update_failed", target_id=target_id, error=str(exc))
        else:
            try:
                created = await self._target.create(config.target, mapped)
                target_id = created.get("id")
            except Exception as exc:
                if not is_duplicate_error(exc):
                    raise
                logger.info("handler.duplicate_on_create", target=config.target, error=str(exc))
                target_id = await self._find_by_match(config.target, match_value)
                if target_id is None:
                    raise

        await self._link(object_name, data, config.target, target_id, context)
        return mapped

    async def after_update(
        self,
        object_name: str,
        config: IntegrationConfig,
        event: EventConfig,
        context: EventContext,
    ) -> dict[str, Any] | None:
        """Push changed fields to the linked target record.

        Records never linked to the target are skipped.
        """
        ref_id = (context.before_update_doc or {}).get(REF_ID_FIELD)
        if not ref_id:
            logger.debug("handler.update_skipped_no_ref", source=object_name)
            return None
        mapped = await map_with_config(context.payload, config, event)
        await self._target.update(config.target, ref_id, mapped)
        logger.info("handler.target_updated", target=config.target, target_id=ref_id)
        return mapped

    async def after_delete(
        self,
        object_name: str,
        config: IntegrationConfig,
        event: EventConfig,
        context: EventContext,
    ) -> None:
        """Delete the linked target record, if any."""
        ref_id = context.doc.get(REF_ID_FIELD)
        if not ref_id:
            logger.debug("handler.delete_skipped_no_ref", source=object_name)
            return
        await self._target.delete(config.target, ref_id)
        logger.info("handler.target_deleted", target=config.target, target_id=ref_id)

    def default_events(self, *, link_existing: bool = False) -> list[dict[str, Any]]:
        """Event configs for the three lifecycle events."""
        create = self.after_create_or_link if link_existing else self.after_create
        return [
            {"name": LifecycleEvent.AFTER_CREATE, "handler": create},
            {"name": LifecycleEvent.AFTER_UPDATE, "handler": self.after_update},
            {"name": LifecycleEvent.AFTER_DELETE, "handler": self.after_delete},
        ]

    # ── Internals ──────────────────────────────────────────────────────────

    async def _find_by_match(self, target_type: str, match_value: Any) -> str | None:
        found = await self._target.find(
            target_type,
            where={self._match_field: match_value},
            limit=1,
            select="Id",
        )
        if found.total_size > 0 and found.records:
            return found.records[0].get("Id")
        return None

    async def _link(
        self,
        object_name: str,
        data: dict[str, Any],
        target_type: str,
        target_id: str | None,
        context: EventContext,
    ) -> None:
        """Write the target reference back onto the source record.

        Failures are logged; the target record already exists at this point.
        On success the context's record is refreshed with the updated one.
        """
        if not target_id:
            logger.error("handler.link_skipped_no_target_id", source=object_name)
            return
        record_id = data.get(self._id_field)
        try:
            updated = await self._source.update(
                object_name,
                record_id,
                self._target.ref_data(target_type, target_id),
            )
        except Exception as exc:
            logger.error(
                "handler.link_failed",
                source=object_name,
                record_id=record_id,
                target_id=target_id,
                error=str(exc),
            )
            return
        if updated:
            context.doc.update(updated)
