import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from studysync.config import settings
from studysync.database.supabase_client import get_backend
from studysync.main import app
from tests.fakes import FakeBackend

ALICE = {"Authorization": "Bearer token-alice"}
BOB = {"Authorization": "Bearer token-bob"}


@pytest.fixture
def fake():
    backend = FakeBackend(auto_emit=True)
    backend.add_user("token-alice", "user-alice", email="alice@studysync.dev", name="Alice")
    backend.add_user("token-bob", "user-bob", email="bob@studysync.dev", name="Bob")
    return backend


@pytest.fixture
def client(fake):
    app.dependency_overrides[get_backend] = lambda: fake
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create_group(client, **overrides):
    body = {"name": "Organic Chemistry", "subject": "chemistry", "capacity": 2, **overrides}
    response = client.post("/api/v1/groups", json=body, headers=ALICE)
    assert response.status_code == 201
    return response.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_invalid_token_is_rejected(client):
    response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401
    assert response.json()["code"] == "unauthenticated"


def test_me(client):
    response = client.get("/api/v1/auth/me", headers=ALICE)
    assert response.json() == {"id": "user-alice", "email": "alice@studysync.dev", "name": "Alice"}


def test_group_lifecycle(client):
    group = _create_group(client)
    assert group["member_count"] == 1

    joined = client.post(f"/api/v1/groups/{group['id']}/join", headers=BOB)
    assert joined.status_code == 201

    again = client.post(f"/api/v1/groups/{group['id']}/join", headers=BOB)
    assert again.status_code == 409
    assert again.json()["code"] == "already_member"

    members = client.get(f"/api/v1/groups/{group['id']}/members", headers=ALICE).json()
    assert sorted(m["user_id"] for m in members) == ["user-alice", "user-bob"]

    left = client.delete(f"/api/v1/groups/{group['id']}/members/me", headers=BOB)
    assert left.status_code == 204


def test_full_group_returns_conflict(client, fake):
    group = _create_group(client, capacity=1)
    response = client.post(f"/api/v1/groups/{group['id']}/join", headers=BOB)
    assert response.status_code == 409
    assert response.json()["code"] == "group_full"


def test_partial_failure_reports_completed_leg(client, fake):
    fake.fail("insert", "group_members")
    response = client.post("/api/v1/groups", json={"name": "A", "subject": "b"}, headers=ALICE)
    assert response.status_code == 207
    assert response.json()["completed"] == "group"
    assert response.json()["failed"] == "membership"


def test_group_reads_require_membership(client):
    group = _create_group(client)
    created = client.post(f"/api/v1/groups/{group['id']}/sessions", headers=ALICE, json={
        "title": "Review", "location": "Room 1",
        "start_time": "2026-11-02T15:00:00Z", "end_time": "2026-11-02T17:00:00Z",
    })
    session_id = created.json()["id"]

    for path in (
        f"/api/v1/groups/{group['id']}/messages",
        f"/api/v1/groups/{group['id']}/resources",
        f"/api/v1/groups/{group['id']}/sessions",
        f"/api/v1/groups/{group['id']}/members",
        f"/api/v1/sessions/{session_id}",
    ):
        response = client.get(path, headers=BOB)
        assert response.status_code == 403, path
        assert response.json()["code"] == "forbidden"

    client.post(f"/api/v1/groups/{group['id']}/join", headers=BOB)
    assert client.get(f"/api/v1/sessions/{session_id}", headers=BOB).status_code == 200


def test_load_failure_is_not_an_empty_list(client, fake):
    group = _create_group(client)
    fake.fail("select", "messages")
    response = client.get(f"/api/v1/groups/{group['id']}/messages", headers=ALICE)
    assert response.status_code == 502
    assert response.json()["code"] == "load_failed"


def test_session_validation_and_rsvp(client):
    group = _create_group(client)
    base = f"/api/v1/groups/{group['id']}/sessions"

    invalid = client.post(base, headers=ALICE, json={
        "title": "Review", "location": "Room 1",
        "start_time": "2026-11-02T15:00:00Z", "end_time": "2026-11-02T14:00:00Z",
    })
    assert invalid.status_code == 422
    assert invalid.json()["code"] == "invalid_time_range"

    created = client.post(base, headers=ALICE, json={
        "title": "Review", "location": "Room 1",
        "start_time": "2026-11-02T15:00:00Z", "end_time": "2026-11-02T17:00:00Z",
    })
    assert created.status_code == 201
    session_id = created.json()["id"]

    client.post(f"/api/v1/groups/{group['id']}/join", headers=BOB)
    client.put(f"/api/v1/sessions/{session_id}/rsvp", json={"status": "tentative"}, headers=BOB)
    client.put(f"/api/v1/sessions/{session_id}/rsvp", json={"status": "confirmed"}, headers=BOB)

    detail = client.get(f"/api/v1/sessions/{session_id}", headers=ALICE).json()
    assert detail["confirmed_count"] == 2
    assert len(detail["attendees"]) == 2


def test_resource_upload_and_delete(client, fake):
    group = _create_group(client)
    url = f"/api/v1/groups/{group['id']}/resources"

    rejected = client.post(url, headers=ALICE, data={"title": "x"},
                           files={"file": ("tool.exe", b"MZ", "application/x-msdownload")})
    assert rejected.status_code == 422
    assert rejected.json()["code"] == "unsupported_type"

    uploaded = client.post(url, headers=ALICE, data={"title": "Notes"},
                           files={"file": ("notes.pdf", b"%PDF-1.7", "application/pdf")})
    assert uploaded.status_code == 201
    resource = uploaded.json()
    assert resource["title"] == "Notes"

    listed = client.get(url, headers=ALICE).json()
    assert [r["id"] for r in listed] == [resource["id"]]

    deleted = client.delete(f"/api/v1/resources/{resource['id']}", headers=ALICE)
    assert deleted.json() == {"id": resource["id"], "deleted": True, "storage_deleted": True, "detail": None}
    assert fake.objects == {}


def test_live_chat_websocket(client, fake):
    group = _create_group(client)
    path = f"/api/v1/ws/groups/{group['id']}/messages?token=token-alice"

    with client.websocket_connect(path) as ws:
        snapshot = ws.receive_json()
        assert snapshot["type"] == "snapshot"
        assert snapshot["records"] == []

        ws.send_json({"action": "send", "content": "hello"})
        replies = [ws.receive_json(), ws.receive_json()]

    by_type = {r["type"]: r for r in replies}
    assert by_type["change"]["record"]["content"] == "hello"
    assert by_type["ack"]["action"] == "send"


def test_live_chat_rejects_non_members(client):
    group = _create_group(client)
    path = f"/api/v1/ws/groups/{group['id']}/messages?token=token-bob"

    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect(path) as ws:
            ws.receive_json()


def test_live_view_reports_validation_errors(client):
    group = _create_group(client)
    path = f"/api/v1/ws/groups/{group['id']}/messages?token=token-alice"

    with client.websocket_connect(path) as ws:
        ws.receive_json()
        ws.send_json({"action": "send", "content": "   "})
        error = ws.receive_json()

    assert error == {"type": "error", "code": "validation_failed", "detail": "Message cannot be empty"}


def test_oversized_upload_is_rejected_before_storage(client, fake, monkeypatch):
    monkeypatch.setattr(settings, "max_upload_bytes", 4)
    group = _create_group(client)

    response = client.post(f"/api/v1/groups/{group['id']}/resources", headers=ALICE, data={"title": "x"},
                           files={"file": ("notes.pdf", b"%PDF-1.7 lecture notes", "application/pdf")})

    assert response.status_code == 422
    assert response.json()["code"] == "file_too_large"
    assert fake.objects == {}
    assert ("put_object", "studysync") not in fake.calls


def test_data_calls_run_as_the_caller(client, fake):
    group = _create_group(client)
    client.get(f"/api/v1/groups/{group['id']}/messages", headers=ALICE)
    client.post(f"/api/v1/groups/{group['id']}/join", headers=BOB)

    assert "token-alice" in fake.scoped_tokens
    assert "token-bob" in fake.scoped_tokens


def test_logout_revokes_only_that_token(client, fake):
    response = client.post("/api/v1/auth/logout", headers=ALICE)

    assert response.status_code == 200
    assert fake.signed_out == ["token-alice"]
    assert client.get("/api/v1/auth/me", headers=BOB).status_code == 200
