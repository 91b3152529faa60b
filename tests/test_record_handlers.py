"""Tests for the standard lifecycle handlers.

Covers:
- after_create: map, create in target, write reference back to source
- after_create_or_link: match existing record, duplicate-on-create re-find
- after_update / after_delete: use the stored reference, skip when absent
- End-to-end through OutboundIntegration with default_events()
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from src.outbound.events.dispatcher import EventDispatcher
from src.outbound.integration import OutboundIntegration, RecordHandlers
from src.outbound.integration.handlers import is_duplicate_error
from src.outbound.integration.schemas import ErrorMode, EventContext
from src.outbound.integration.validator import validate_config


# ── Helpers ──────────────────────────────────────────────────────────────────


async def _noop(*args):
    return None


def _make_config(**overrides):
    raw = {
        "source": "Contact",
        "target": "Lead",
        "map": {"name": "LastName", "email": "Email", "company.name": "Company"},
        "events": [{"name": "afterCreate", "handler": _noop}],
    }
    raw.update(overrides)
    return validate_config(raw)


def _context(event_name: str = "Contact.afterCreate", **kwargs) -> EventContext:
    doc = kwargs.pop(
        "doc",
        {"_id": "c1", "name": "Lovelace", "email": "ada@example.com", "company": {"name": "Acme"}},
    )
    return EventContext(event_name=event_name, doc=doc, **kwargs)


# ── after_create ─────────────────────────────────────────────────────────────


class TestAfterCreate:
    @pytest.mark.asyncio
    async def test_creates_and_links(self, source_client, target_client):
        handlers = RecordHandlers(source_client, target_client)
        config = _make_config()
        context = _context()

        mapped = await handlers.after_create("Contact", config, config.events[0], context)

        assert mapped == {"LastName": "Lovelace", "Email": "ada@example.com", "Company": "Acme"}
        assert target_client.created == [("Lead", mapped)]
        (object_type, record_id, patch) = source_client.updates[0]
        assert (object_type, record_id) == ("Contact", "c1")
        assert patch == {"refId": "LEA0001", "refUrl": "https://crm.example.com/Lead/LEA0001"}
        assert context.doc["refId"] == "LEA0001"

    @pytest.mark.asyncio
    async def test_link_failure_is_logged_not_raised(self, source_client, target_client):
        source_client.fail_update = True
        handlers = RecordHandlers(source_client, target_client)
        config = _make_config()
        context = _context()

        await handlers.after_create("Contact", config, config.events[0], context)

        assert len(target_client.created) == 1
        assert "refId" not in context.doc

    @pytest.mark.asyncio
    async def test_target_create_error_propagates(self, source_client, target_client):
        target_client.create_error = RuntimeError("REQUIRED_FIELD_MISSING")
        handlers = RecordHandlers(source_client, target_client)
        config = _make_config()

        with pytest.raises(RuntimeError, match="REQUIRED_FIELD_MISSING"):
            await handlers.after_create("Contact", config, config.events[0], _context())
        assert source_client.updates == []


# ── after_create_or_link ─────────────────────────────────────────────────────


class TestAfterCreateOrLink:
    @pytest.mark.asyncio
    async def test_links_existing_record(self, source_client, target_client):
        existing = target_client._insert("Lead", {"Email": "ada@example.com"})
        handlers = RecordHandlers(source_client, target_client)
        config = _make_config()
        context = _context()

        await handlers.after_create_or_link("Contact", config, config.events[0], context)

        assert target_client.created == []
        assert target_client.updated[0][1] == existing
        assert context.doc["refId"] == existing

    @pytest.mark.asyncio
    async def test_update_failure_on_match_still_links(self, source_client, target_client):
        existing = target_client._insert("Lead", {"Email": "ada@example.com"})
        target_client.update = AsyncMock(side_effect=RuntimeError("ENTITY_IS_LOCKED"))
        handlers = RecordHandlers(source_client, target_client)
        config = _make_config()
        context = _context()

        await handlers.after_create_or_link("Contact", config, config.events[0], context)

        target_client.update.assert_awaited_once()
        assert context.doc["refId"] == existing

    @pytest.mark.asyncio
    async def test_creates_when_no_match(self, source_client, target_client):
        handlers = RecordHandlers(source_client, target_client)
        config = _make_config()

        await handlers.after_create_or_link("Contact", config, config.events[0], _context())

        assert len(target_client.created) == 1
        assert source_client.updates[0][2]["refId"] == "LEA0001"

    @pytest.mark.asyncio
    async def test_creates_without_match_value(self, source_client, target_client):
        target_client._insert("Lead", {"Email": None})
        handlers = RecordHandlers(source_client, target_client)
        config = _make_config()
        context = _context(doc={"_id": "c2", "name": "Hopper"})

        await handlers.after_create_or_link("Contact", config, config.events[0], context)

        assert target_client.created == [("Lead", {"LastName": "Hopper"})]

    @pytest.mark.asyncio
    async def test_duplicate_on_create_links_found_record(self, source_client, target_client):
        target_client.create_error = RuntimeError("DUPLICATE_VALUE: duplicate value found")
        target_client.insert_on_create_error = {"Email": "ada@example.com"}
        handlers = RecordHandlers(source_client, target_client)
        config = _make_config()
        context = _context()

        await handlers.after_create_or_link("Contact", config, config.events[0], context)

        assert context.doc["refId"] == "LEA0001"

    @pytest.mark.asyncio
    async def test_duplicate_without_match_reraises(self, source_client, target_client):
        target_client.create_error = RuntimeError("El registro ya existe")
        handlers = RecordHandlers(source_client, target_client)
        config = _make_config()

        with pytest.raises(RuntimeError, match="ya existe"):
            await handlers.after_create_or_link("Contact", config, config.events[0], _context())

    @pytest.mark.asyncio
    async def test_non_duplicate_error_reraises(self, source_client, target_client):
        target_client.create_error = RuntimeError("INVALID_FIELD")
        handlers = RecordHandlers(source_client, target_client)
        config = _make_config()

        with pytest.raises(RuntimeError, match="INVALID_FIELD"):
            await handlers.after_create_or_link("Contact", config, config.events[0], _context())

    @pytest.mark.asyncio
    async def test_custom_match_field(self, source_client, target_client):
        existing = target_client._insert("Lead", {"LastName": "Lovelace"})
        handlers = RecordHandlers(source_client, target_client, match_field="LastName")
        config = _make_config()
        context = _context()

        await handlers.after_create_or_link("Contact", config, config.events[0], context)

        assert context.doc["refId"] == existing


def test_is_duplicate_error():
    assert is_duplicate_error(RuntimeError("DUPLICATE_VALUE"))
    assert is_duplicate_error(ValueError("duplicate record"))
    assert is_duplicate_error(Exception("el cliente ya existe"))
    assert not is_duplicate_error(RuntimeError("timeout"))


# ── after_update / after_delete ──────────────────────────────────────────────


class TestAfterUpdate:
    @pytest.mark.asyncio
    async def test_updates_referenced_record(self, source_client, target_client):
        handlers = RecordHandlers(source_client, target_client)
        config = _make_config()
        context = _context(
            "Contact.afterUpdate",
            payload={"email": "ada@new.example.com"},
            before_update_doc={"_id": "c1", "refId": "LEA0042"},
        )

        mapped = await handlers.after_update("Contact", config, config.events[0], context)

        assert mapped == {"Email": "ada@new.example.com"}
        assert target_client.updated == [("Lead", "LEA0042", mapped)]

    @pytest.mark.asyncio
    async def test_skips_unlinked_record(self, source_client, target_client):
        handlers = RecordHandlers(source_client, target_client)
        config = _make_config()
        context = _context("Contact.afterUpdate", payload={"email": "x"}, before_update_doc={"_id": "c1"})

        assert await handlers.after_update("Contact", config, config.events[0], context) is None
        assert target_client.updated == []


class TestAfterDelete:
    @pytest.mark.asyncio
    async def test_deletes_referenced_record(self, source_client, target_client):
        handlers = RecordHandlers(source_client, target_client)
        config = _make_config()
        context = _context("Contact.afterDelete", doc={"_id": "c1", "refId": "LEA0042"})

        await handlers.after_delete("Contact", config, config.events[0], context)

        assert target_client.deleted == [("Lead", "LEA0042")]

    @pytest.mark.asyncio
    async def test_skips_unlinked_record(self, source_client, target_client):
        handlers = RecordHandlers(source_client, target_client)
        config = _make_config()

        await handlers.after_delete("Contact", config, config.events[0], _context("Contact.afterDelete"))

        assert target_client.deleted == []


# ── End-to-End ───────────────────────────────────────────────────────────────


class TestWithIntegration:
    @pytest.mark.asyncio
    async def test_default_events_full_lifecycle(self, source_client, target_client):
        handlers = RecordHandlers(source_client, target_client)
        configs = [
            {
                "source": "Contact",
                "target": "Lead",
                "map": {"name": "LastName", "email": "Email"},
                "global_after_transforms": {"LeadSource": lambda v, m, o: "Web"},
                "events": handlers.default_events(),
            }
        ]

        create_ctx = _context()
        create = OutboundIntegration(configs, EventDispatcher(error_mode=ErrorMode.IMMEDIATE))
        await create.initialize("Contact.afterCreate", create_ctx)

        lead_id = create_ctx.doc["refId"]
        assert target_client.records[lead_id]["LeadSource"] == "Web"

        update = OutboundIntegration(configs, EventDispatcher())
        await update.initialize(
            "Contact.afterUpdate",
            _context(
                "Contact.afterUpdate",
                payload={"name": "King"},
                before_update_doc=dict(create_ctx.doc),
            ),
        )
        assert target_client.records[lead_id]["LastName"] == "King"

        delete = OutboundIntegration(configs, EventDispatcher())
        await delete.initialize("Contact.afterDelete", _context("Contact.afterDelete", doc=dict(create_ctx.doc)))
        assert lead_id not in target_client.records

    @pytest.mark.asyncio
    async def test_link_existing_variant(self, source_client, target_client):
        handlers = RecordHandlers(source_client, target_client)
        events = handlers.default_events(link_existing=True)
        assert events[0]["handler"] == handlers.after_create_or_link
