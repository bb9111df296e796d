from __future__ import annotations

import pytest

from conftest import ActionStubSource, StubSource, make_entry
from otpradar.core.actions import MessageActionService
from otpradar.core.models import OTPSource
from otpradar.data.cache_store import MemoryStore, RefreshCache
from otpradar.services.audit_logger import AuditLogger
from otpradar.utils.logging import mask_code


@pytest.fixture
def cache():
    return RefreshCache(MemoryStore())


@pytest.mark.asyncio
async def test_mark_as_read_is_routed_to_the_owning_source(cache, tmp_path):
    gmail = ActionStubSource(OTPSource.GMAIL)
    outlook = ActionStubSource(OTPSource.OUTLOOK)
    audit = AuditLogger(tmp_path / "audit.log")
    service = MessageActionService([gmail, outlook], cache, audit_logger=audit)
    entry = make_entry(OTPSource.OUTLOOK, "m1")

    assert await service.mark_as_read(entry) is True

    assert outlook.read == ["outlook-m1"]
    assert gmail.read == []
    assert audit.read()[-1] == {
        "timestamp": audit.read()[-1]["timestamp"],
        "event": "message_marked_read",
        "payload": {"id": "outlook-m1", "source": "outlook"},
    }


@pytest.mark.asyncio
async def test_delete_removes_entry_from_cache(cache):
    gmail = ActionStubSource(OTPSource.GMAIL)
    keep = make_entry(OTPSource.GMAIL, "keep")
    drop = make_entry(OTPSource.GMAIL, "drop")
    await cache.save_entries([keep, drop])
    service = MessageActionService([gmail], cache)

    assert await service.delete_message(drop) is True

    assert gmail.deleted == ["gmail-drop"]
    assert [entry.id for entry in await cache.load_entries()] == ["gmail-keep"]


@pytest.mark.asyncio
async def test_unsupported_source_is_a_no_op(cache):
    imessage = StubSource(OTPSource.IMESSAGE)
    entry = make_entry(OTPSource.IMESSAGE, "1")
    await cache.save_entries([entry])
    service = MessageActionService([imessage], cache)

    assert service.supports(entry) is False
    assert await service.mark_as_read(entry) is False
    assert await service.delete_message(entry) is False
    assert [item.id for item in await cache.load_entries()] == ["imessage-1"]


@pytest.mark.asyncio
async def test_entry_without_message_id_is_skipped(cache):
    gmail = ActionStubSource(OTPSource.GMAIL)
    entry = make_entry(OTPSource.GMAIL, "x").model_copy(update={"message_id": None})
    service = MessageActionService([gmail], cache)

    assert service.supports(entry) is True
    assert await service.mark_as_read(entry) is False
    assert gmail.read == []


@pytest.mark.asyncio
async def test_find_looks_up_cached_entries(cache):
    entry = make_entry(OTPSource.ICLOUD, "42")
    await cache.save_entries([entry])
    service = MessageActionService([], cache)

    assert (await service.find("icloud-42")).code == entry.code
    assert await service.find("icloud-43") is None


def test_mask_code_keeps_last_two_digits():
    assert mask_code("483920") == "****20"
    assert mask_code("12") == "**"
