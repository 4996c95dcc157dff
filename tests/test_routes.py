"""Tests for the HTTP sync endpoints."""

from __future__ import annotations

import json
import threading
import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from notesync.server.app import SESSION_COOKIE_NAME, create_app
from notesync.sync.auth import AuthHandshake
from notesync.sync.entities import EntityKind

T0 = "2026-03-01T12:00:00.000Z"


def _note(note_id: str, title: str = "Pushed") -> dict:
    return {
        "note_id": note_id,
        "title": title,
        "content": "body",
        "is_protected": 0,
        "is_deleted": 0,
        "date_created": T0,
        "date_modified": T0,
    }


@pytest.fixture
def app(hub):
    return create_app(hub)


@pytest.fixture
def anonymous(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def client(app, hub):
    """Client holding a valid session cookie."""
    with TestClient(app) as c:
        body = AuthHandshake(hub.store).build_request().model_dump(by_alias=True)
        response = c.post("/api/login/sync", json=body)
        assert response.status_code == 200
        yield c


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


class TestLogin:
    def test_login_sets_session_cookie(self, anonymous, hub):
        body = AuthHandshake(hub.store).build_request().model_dump(by_alias=True)

        response = anonymous.post("/api/login/sync", json=body)

        assert response.status_code == 200
        assert SESSION_COOKIE_NAME in response.cookies

    def test_bad_hash_is_unauthorized(self, anonymous, hub):
        body = AuthHandshake(hub.store).build_request().model_dump(by_alias=True)
        body["hash"] = "forged"

        response = anonymous.post("/api/login/sync", json=body)

        assert response.status_code == 401
        assert "incorrect" in response.json()["detail"]

    def test_malformed_body_is_unauthorized(self, anonymous):
        response = anonymous.post("/api/login/sync", json={"timestamp": "x"})
        assert response.status_code == 401

    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/api/sync/changed"),
            ("get", "/api/sync/check"),
            ("get", "/api/sync/notes/N1"),
            ("put", "/api/sync/notes"),
            ("post", "/api/sync/now"),
            ("put", "/api/sync/update"),
            ("get", "/api/sync/stats"),
            ("post", "/api/sync/queue-sector/notes/N"),
            ("post", "/api/database/backup"),
            ("post", "/api/database/vacuum"),
        ],
    )
    def test_routes_require_session(self, anonymous, method, path):
        response = getattr(anonymous, method)(path)
        assert response.status_code == 401

    def test_health_is_public(self, anonymous):
        response = anonymous.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


# ---------------------------------------------------------------------------
# Pull side
# ---------------------------------------------------------------------------


class TestPullEndpoints:
    def test_changed_excludes_requester_source(self, client, hub):
        hub.repository.save_note("Local", note_id="N1")
        hub.updater.update_entity(EntityKind.NOTES, _note("N2"), "peer-src")

        response = client.get(
            "/api/sync/changed", params={"lastSyncId": 0, "sourceId": "peer-src"}
        )

        data = response.json()
        assert [c["entityId"] for c in data["entityChanges"]] == ["N1"]
        # the requester's own change is not counted
        assert data["maxEntityChangeId"] == 1

    def test_changed_respects_cursor(self, client, hub):
        hub.repository.save_note("a", note_id="N1")
        hub.repository.save_note("b", note_id="N2")

        data = client.get("/api/sync/changed", params={"lastSyncId": 1}).json()

        assert [c["id"] for c in data["entityChanges"]] == [2]

    def test_get_entity_with_links(self, client, hub):
        hub.repository.save_note("a", note_id="N1", links=["https://x.example"])

        data = client.get("/api/sync/notes/N1").json()

        assert data["entity"]["title"] == "a"
        assert data["links"][0]["target_url"] == "https://x.example"

    def test_tree_entity_has_no_links(self, client, hub):
        hub.repository.place_in_tree("N1", "root")
        data = client.get("/api/sync/notes_tree/N1").json()
        assert "links" not in data

    def test_missing_entity_is_404(self, client):
        response = client.get("/api/sync/notes/nope")
        assert response.status_code == 404

    def test_unknown_entity_kind_is_400(self, client):
        response = client.get("/api/sync/attachments/x")
        assert response.status_code == 400
        assert "attachments" in response.json()["detail"]


# ---------------------------------------------------------------------------
# Push side
# ---------------------------------------------------------------------------


class TestPushEndpoints:
    def test_put_single_entity(self, client, hub):
        body = {"sourceId": "peer-src", "entity": _note("N1"), "links": []}

        response = client.put("/api/sync/notes", content=json.dumps(body))

        assert response.json() == {"applied": 1, "conflicts": 0}
        assert hub.repository.get_note("N1")["title"] == "Pushed"
        assert hub.changes.first_after(0).source_id == "peer-src"

    def test_put_in_pages(self, client, hub):
        text = json.dumps({"sourceId": "peer-src", "entity": _note("N1", "Paged")})
        half = len(text) // 2
        pages = [text[:half], text[half:]]

        first = client.put(
            "/api/sync/notes",
            content=pages[0],
            headers={"pageCount": "2", "pageIndex": "0", "requestId": "r1"},
        )
        assert first.json() == {"status": "page accepted"}
        assert hub.repository.get_note("N1") is None

        second = client.put(
            "/api/sync/notes",
            content=pages[1],
            headers={"pageCount": "2", "pageIndex": "1", "requestId": "r1"},
        )
        assert second.json() == {"applied": 1, "conflicts": 0}
        assert hub.repository.get_note("N1")["title"] == "Paged"

    def test_page_for_unknown_request_is_400(self, client):
        response = client.put(
            "/api/sync/notes",
            content="tail",
            headers={"pageCount": "2", "pageIndex": "1", "requestId": "ghost"},
        )
        assert response.status_code == 400

    def test_incomplete_paging_headers_are_400(self, client):
        response = client.put(
            "/api/sync/notes", content="{}", headers={"pageCount": "2"}
        )
        assert response.status_code == 400

    def test_invalid_json_is_400(self, client):
        response = client.put("/api/sync/notes", content="{not json")
        assert response.status_code == 400

    def test_older_row_reported_as_conflict(self, client, hub):
        hub.repository.save_note("Newer", note_id="N1", modified="2026-04-01T00:00:00.000Z")
        body = {"sourceId": "peer-src", "entity": _note("N1", "Older")}

        response = client.put("/api/sync/notes", content=json.dumps(body))

        assert response.json() == {"applied": 0, "conflicts": 1}
        assert hub.repository.get_note("N1")["title"] == "Newer"

    def test_batched_update(self, client, hub):
        body = {
            "sourceId": "peer-src",
            "entities": [
                {
                    "entityChange": {
                        "id": 1,
                        "entityName": "notes",
                        "entityId": "N1",
                        "sourceId": "peer-src",
                    },
                    "entity": _note("N1"),
                    "links": [{"target_url": "https://x.example"}],
                },
                {
                    "entityChange": {
                        "id": 2,
                        "entityName": "notes_tree",
                        "entityId": "N1",
                        "sourceId": "peer-src",
                    },
                    "entity": {
                        "note_id": "N1",
                        "parent_note_id": "root",
                        "note_position": 0,
                        "date_modified": T0,
                    },
                },
            ],
        }

        response = client.put("/api/sync/update", content=json.dumps(body))

        assert response.json() == {"applied": 2, "conflicts": 0}
        assert [l["target_url"] for l in hub.repository.get_links("N1")] == [
            "https://x.example"
        ]

    def test_update_without_entities_is_400(self, client):
        body = {"sourceId": "peer-src", "entity": _note("N1")}
        response = client.put("/api/sync/update", content=json.dumps(body))
        assert response.status_code == 400

    def test_blocked_write_does_not_stall_server(self, client, hub):
        body = json.dumps({"sourceId": "peer-src", "entity": _note("N1")})
        responses = []

        hub.store._lock.acquire()
        try:
            writer = threading.Thread(
                target=lambda: responses.append(
                    client.put("/api/sync/notes", content=body)
                )
            )
            writer.start()
            time.sleep(0.2)

            assert client.get("/health").status_code == 200
            assert responses == []
        finally:
            hub.store._lock.release()

        writer.join(timeout=5)
        assert responses[0].json() == {"applied": 1, "conflicts": 0}


# ---------------------------------------------------------------------------
# Diagnostics and operator actions
# ---------------------------------------------------------------------------


class TestOperatorEndpoints:
    def test_check(self, client, hub):
        hub.repository.save_note("a", note_id="N1")

        data = client.get("/api/sync/check").json()

        assert data["maxEntityChangeId"] == 1
        assert set(data["entityHashes"]) == {"notes", "notes_tree", "notes_history"}
        assert list(data["entityHashes"]["notes"]) == ["N"]

    def test_stats(self, client):
        data = client.get("/api/sync/stats").json()
        assert data == {
            "initialized": False,
            "outstandingPullCount": 0,
            "lastSyncOutcome": None,
        }

    def test_finished_marks_initialized(self, client, hub):
        assert client.post("/api/sync/finished").json() == {"initialized": True}
        assert client.get("/api/sync/stats").json()["initialized"] is True

    def test_sync_now_without_peer(self, client):
        data = client.post("/api/sync/now").json()
        assert data["status"] == "not_configured"

    def test_connection_test_without_peer_fails(self, client):
        response = client.post("/api/sync/test")
        assert response.status_code == 502

    def test_fill_entity_changes(self, client, hub):
        hub.store.replace("notes", _note("RAW"))
        assert client.post("/api/sync/fill-entity-changes").json() == {"added": 1}
        assert client.post("/api/sync/fill-entity-changes").json() == {"added": 0}

    def test_force_note_sync_queues_rows(self, client, hub):
        hub.repository.save_note("a", note_id="N1")
        before = hub.changes.max_id()

        data = client.post("/api/sync/force-note-sync/N1").json()

        assert data["status"] == "not_configured"
        assert hub.changes.max_id() == before + 1

    def test_backup(self, client, hub):
        data = client.post("/api/database/backup").json()
        path = Path(data["backupFile"])
        assert path.name == "backup-now.db"
        assert path.exists()

    def test_queue_sector(self, client, hub):
        hub.repository.save_note("a", note_id="Na")
        hub.repository.save_note("b", note_id="Nb")
        hub.repository.save_note("c", note_id="Xc")
        before = hub.changes.max_id()

        data = client.post("/api/sync/queue-sector/notes/N").json()

        assert data == {"queued": 2}
        assert hub.changes.max_id() == before + 2

    def test_queue_sector_unknown_kind_is_400(self, client):
        response = client.post("/api/sync/queue-sector/attributes/N")
        assert response.status_code == 400

    def test_queue_sector_needs_single_character(self, client):
        response = client.post("/api/sync/queue-sector/notes/NN")
        assert response.status_code == 400

    def test_vacuum(self, client, hub):
        hub.repository.save_note("a", note_id="N1")

        assert client.post("/api/database/vacuum").json() == {"success": True}
        assert hub.repository.get_note("N1")["title"] == "a"
