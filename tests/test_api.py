from __future__ import annotations

from fastapi.testclient import TestClient

from conftest import ActionStubSource, AuthStubSource, StubSource, make_entry
from otpradar.app.main import create_app
from otpradar.app.wiring import build_components
from otpradar.core.errors import SourceFetchError
from otpradar.core.models import OTPSource
from otpradar.core.settings import RuntimeSettings
from otpradar.data.cache_store import MemoryStore
from otpradar.services.audit_logger import AuditLogger


class FailingActionSource(ActionStubSource):
    async def mark_as_read(self, entry):
        raise SourceFetchError(self.name.value, "API error 403")


def _client(tmp_path, sources, *, interval=5):
    settings = RuntimeSettings(background_refresh_interval=interval, cache_path=tmp_path / "cache.json")
    components = build_components(
        settings,
        store=MemoryStore(),
        sources=sources,
        audit_logger=AuditLogger(tmp_path / "audit.log"),
    )
    return TestClient(create_app(settings, components=components, run_background=False))


def test_health_reports_background_state(tmp_path):
    with _client(tmp_path, [], interval=0) as client:
        body = client.get("/health").json()

    assert body == {"background_enabled": False, "background_running": False, "last_refresh": None, "cached": 0}


def test_refresh_then_list(tmp_path):
    sources = [
        StubSource(OTPSource.GMAIL, [make_entry(OTPSource.GMAIL, "a", minutes_ago=3)]),
        StubSource(OTPSource.IMESSAGE, [make_entry(OTPSource.IMESSAGE, "9", code="740126", minutes_ago=1)]),
    ]
    with _client(tmp_path, sources) as client:
        refreshed = client.post("/refresh").json()
        listed = client.get("/otps").json()

    assert refreshed["status"] == "ran"
    assert [entry["id"] for entry in refreshed["entries"]] == ["imessage-9", "gmail-a"]
    assert [entry["id"] for entry in listed] == ["imessage-9", "gmail-a"]
    assert listed[0]["code"] == "740126"
    assert listed[0]["source"] == "imessage"


def test_background_refresh_skip_returns_cached(tmp_path):
    sources = [
        StubSource(OTPSource.ICLOUD, [make_entry(OTPSource.ICLOUD, "1")]),
        AuthStubSource(OTPSource.OUTLOOK, authorized=False),
    ]
    with _client(tmp_path, sources) as client:
        client.post("/refresh")
        skipped = client.post("/refresh", params={"background": "true"}).json()

    assert skipped["status"] == "skipped"
    assert skipped["reason"] == "unauthorized"
    assert [entry["id"] for entry in skipped["entries"]] == ["icloud-1"]


def test_message_actions(tmp_path):
    gmail = ActionStubSource(OTPSource.GMAIL, [make_entry(OTPSource.GMAIL, "a"), make_entry(OTPSource.GMAIL, "b")])
    with _client(tmp_path, [gmail]) as client:
        client.post("/refresh")
        read = client.post("/otps/gmail-a/read")
        deleted = client.delete("/otps/gmail-b")
        remaining = client.get("/otps").json()
        missing = client.delete("/otps/gmail-zzz")

    assert read.json() == {"ok": True}
    assert deleted.json() == {"ok": True}
    assert gmail.read == ["gmail-a"] and gmail.deleted == ["gmail-b"]
    assert [entry["id"] for entry in remaining] == ["gmail-a"]
    assert missing.status_code == 404


def test_unsupported_action_reports_not_ok(tmp_path):
    imessage = StubSource(OTPSource.IMESSAGE, [make_entry(OTPSource.IMESSAGE, "1")])
    with _client(tmp_path, [imessage]) as client:
        client.post("/refresh")
        response = client.post("/otps/imessage-1/read")

    assert response.status_code == 200
    assert response.json() == {"ok": False}


def test_provider_failure_maps_to_bad_gateway(tmp_path):
    outlook = FailingActionSource(OTPSource.OUTLOOK, [make_entry(OTPSource.OUTLOOK, "x")])
    with _client(tmp_path, [outlook]) as client:
        client.post("/refresh")
        response = client.post("/otps/outlook-x/read")

    assert response.status_code == 502
    assert "API error 403" in response.json()["detail"]
