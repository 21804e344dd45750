"""API tests through FastAPI's TestClient."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from chat_archive.app import create_app
from chat_archive.demo import DEMO_NPCS, DEMO_PLAYERS, demo_session_log
from chat_archive.pipeline import PipelineError
from chat_archive.storage import StorageError


@pytest.fixture
def client(tmp_path):
    return TestClient(create_app(tmp_path))


@pytest.fixture
def slug(client):
    resp = client.post("/api/campaigns", json={
        "title": "Rise of the Runelords",
        "scene_name": "The Rusty Dragon",
        "roster": {"players": DEMO_PLAYERS, "npcs": DEMO_NPCS},
    })
    assert resp.status_code == 201
    return resp.json()["slug"]


def _compress(client, slug):
    client.post(f"/api/campaigns/{slug}/records", json={"records": demo_session_log()})
    resp = client.post(f"/api/campaigns/{slug}/compress")
    assert resp.status_code == 200
    return resp.json()


# ── Settings ────────────────────────────────────────────────


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_settings(client):
    assert client.get("/api/settings").json()["storage_type"] == "document"

    resp = client.patch("/api/settings", json={"storage_type": "flat-file", "keep_originals": True})
    assert resp.status_code == 200
    assert resp.json()["storage_type"] == "flat-file"
    assert resp.json()["keep_originals"] is True


def test_settings_validation(client):
    assert client.patch("/api/settings", json={"storage_type": "floppy"}).status_code == 422
    assert client.patch("/api/settings", json={"combat_timeout_minutes": -1}).status_code == 400


# ── Campaigns ───────────────────────────────────────────────


def test_campaign_crud(client, slug):
    assert slug == "rise-of-the-runelords"
    assert [c["slug"] for c in client.get("/api/campaigns").json()] == [slug]

    resp = client.patch(f"/api/campaigns/{slug}", json={"scene_name": "Thistletop"})
    assert resp.json()["scene_name"] == "Thistletop"
    assert client.get(f"/api/campaigns/{slug}").json()["scene_name"] == "Thistletop"

    assert client.delete(f"/api/campaigns/{slug}").json() == {"ok": True}
    assert client.get(f"/api/campaigns/{slug}").status_code == 404
    assert client.delete(f"/api/campaigns/{slug}").status_code == 404


def test_create_requires_title(client):
    assert client.post("/api/campaigns", json={"title": "  "}).status_code == 400


def test_records(client, slug):
    resp = client.post(f"/api/campaigns/{slug}/records", json={"records": demo_session_log()[:3]})
    assert resp.json() == {"pending": 3}
    assert len(client.get(f"/api/campaigns/{slug}/records").json()) == 3
    assert client.get("/api/campaigns/nope/records").status_code == 404


def test_sessions(client, slug):
    assert client.get(f"/api/campaigns/{slug}/session").json()["number"] == 1

    resp = client.post(f"/api/campaigns/{slug}/sessions", json={"name": "Thistletop"})
    assert resp.json()["number"] == 2
    assert resp.json()["name"] == "Thistletop"

    resp = client.put(f"/api/campaigns/{slug}/session/combat", json={"active": True})
    assert resp.json()["combat_active"] is True
    assert client.post("/api/campaigns/nope/sessions", json={}).status_code == 404
    assert client.get("/api/campaigns/nope/session").status_code == 404


# ── Compression and archives ────────────────────────────────


def test_compress_and_browse(client, slug):
    outcome = _compress(client, slug)
    assert outcome["status"] == "saved"
    assert outcome["removed_records"] == 17
    assert len(outcome["result"]["entries"]) == 7
    archive_id = outcome["archive_id"]

    summaries = client.get(f"/api/campaigns/{slug}/archives").json()
    assert [s["id"] for s in summaries] == [archive_id]

    archive = client.get(f"/api/campaigns/{slug}/archives/{archive_id}").json()
    assert archive["compression_ratio"] == 59
    assert archive["statistics"]["total_combats"] == 1

    export = client.get(f"/api/campaigns/{slug}/archives/{archive_id}/export")
    assert export.headers["content-type"].startswith("text/markdown")
    assert "# Rise of the Runelords - Session 1" in export.text

    assert client.delete(f"/api/campaigns/{slug}/archives/{archive_id}").json() == {"ok": True}
    assert client.get(f"/api/campaigns/{slug}/archives/{archive_id}").status_code == 404
    assert client.delete(f"/api/campaigns/{slug}/archives/{archive_id}").status_code == 404


def test_compress_nothing_pending(client, slug):
    assert client.post(f"/api/campaigns/{slug}/compress").json()["status"] == "empty"


def test_compress_keep_originals(client, slug):
    client.post(f"/api/campaigns/{slug}/records", json={"records": demo_session_log()})
    resp = client.post(f"/api/campaigns/{slug}/compress", json={"keep_originals": True})
    assert resp.json()["removed_records"] == 0
    assert len(client.get(f"/api/campaigns/{slug}/records").json()) == 17


def test_compress_unknown_campaign(client):
    assert client.post("/api/campaigns/nope/compress").status_code == 404


def test_search_and_highlights(client, slug):
    _compress(client, slug)

    hits = client.get(f"/api/campaigns/{slug}/search", params={"q": "gold"}).json()
    assert hits
    assert all("gold" in str(h["entry"]).lower() for h in hits)

    combat = client.get(f"/api/campaigns/{slug}/search", params={"kind": "combat-summary"}).json()
    assert len(combat) == 1

    highlights = client.get(f"/api/campaigns/{slug}/highlights", params={"session": 1}).json()
    assert [h["reason"] for h in highlights] == ["casualties", "treasure", "experience"]
    assert client.get(f"/api/campaigns/{slug}/highlights", params={"session": 2}).json() == []


# ── Error mapping ───────────────────────────────────────────


def test_storage_failure_is_bad_gateway(client, slug):
    with patch("chat_archive.service.list_archives", side_effect=StorageError("disk gone")):
        resp = client.get(f"/api/campaigns/{slug}/archives")
    assert resp.status_code == 502
    assert resp.json()["detail"] == "disk gone"


def test_missing_archive_is_not_found(client, slug):
    resp = client.get(f"/api/campaigns/{slug}/archives/session-1-missing/export")
    assert resp.status_code == 404


def test_pipeline_failure_is_server_error(client, slug):
    with patch("chat_archive.service.compress_campaign", side_effect=PipelineError("lost r1")):
        resp = client.post(f"/api/campaigns/{slug}/compress")
    assert resp.status_code == 500
    assert "lost r1" in resp.json()["detail"]


def test_busy_compression(client, slug):
    with patch("chat_archive.service.compress_campaign", return_value=None):
        assert client.post(f"/api/campaigns/{slug}/compress").json() == {"status": "busy"}
