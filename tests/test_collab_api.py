"""Tests for the /collab HTTP endpoint."""

import random

import pytest
from fastapi.testclient import TestClient

from app import create_app
from repository import RoomRepository
from synchronizer import RoomSynchronizer
from tests.conftest import BrokenStore, FailingStore


def create_room(client: TestClient, room_id: str = "r1", user_id: str = "u1"):
    return client.post("/collab", json={
        "action": "create_room",
        "roomId": room_id,
        "roomData": {"name": "Roadmap", "method": "polling"},
        "userId": user_id,
        "userName": "Alice",
        "snapshot": {"nodeMap": {"a": 1}},
    })


class TestCollabEndpoint:
    """End-to-end flows through the HTTP transport."""

    def test_polling_session(self, client, clock):
        response = create_room(client)
        assert response.status_code == 200
        assert response.json() == {"success": True, "roomId": "r1", "message": "Room created"}

        response = client.post("/collab", json={"action": "join_room", "roomId": "r1", "userId": "u2", "userName": "Bob"})
        assert response.status_code == 200
        body = response.json()
        assert body["snapshot"] == {"nodeMap": {"a": 1}}
        assert body["branch"]["snapshot"] == {"nodeMap": {"a": 1}}
        assert body["room"]["createdBy"] == "u1"
        assert [u["id"] for u in body["room"]["activeUsers"]] == ["u1", "u2"]

        clock.advance()
        response = client.post("/collab", json={
            "action": "update_branch",
            "roomId": "r1",
            "userId": "u2",
            "snapshot": {"nodeMap": {"a": 1, "b": 2}},
            "operation": {"type": "add", "nodeId": "b"},
        })
        assert response.status_code == 200
        assert response.json()["operationId"].startswith(f"op_{clock.now}_")

        clock.advance()
        response = client.get("/collab", params={"action": "get_updates", "roomId": "r1", "userId": "u1", "lastSync": "0"})
        assert response.status_code == 200
        body = response.json()
        assert body["lastSync"] == clock.now
        assert len(body["updates"]) == 1
        assert body["updates"][0]["userId"] == "u2"
        assert body["updates"][0]["nodeId"] == "b"
        assert body["branches"] == [{"userId": "u2", "userName": "Bob", "lastUpdated": clock.now - 1, "nodeCount": 2}]

        response = client.get("/collab", params={"action": "get_room_info", "roomId": "r1"})
        assert response.status_code == 200
        assert response.json()["snapshot"] == {"nodeMap": {"a": 1}}

        assert client.post("/collab", json={"action": "leave_room", "roomId": "r1", "userId": "u1"}).json() == {"success": True}
        assert client.post("/collab", json={"action": "leave_room", "roomId": "r1", "userId": "u2"}).json() == {"success": True}

        response = client.get("/collab", params={"action": "get_room_info", "roomId": "r1"})
        assert response.status_code == 404
        assert response.json()["code"] == "NotFound"

    def test_action_from_query_string(self, client):
        create_room(client)

        response = client.post("/collab?action=send_operation", json={"roomId": "r1", "userId": "u1", "operation": {"type": "rename"}})

        assert response.status_code == 200
        assert response.json()["success"] is True


class TestCollabErrors:
    """Error mapping to status codes and {"error", "code"} bodies."""

    def test_invalid_json(self, client):
        response = client.post("/collab", content=b"{oops", headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert response.json()["code"] == "InvalidPayload"

    def test_body_must_be_object(self, client):
        response = client.post("/collab", json=["create_room"])

        assert response.status_code == 400
        assert response.json()["code"] == "InvalidPayload"

    def test_missing_action(self, client):
        response = client.post("/collab", json={"roomId": "r1"})

        assert response.status_code == 400
        assert response.json()["code"] == "MissingField"

    def test_unknown_action(self, client):
        response = client.get("/collab", params={"action": "explode"})

        assert response.status_code == 400
        assert response.json()["code"] == "InvalidPayload"

    def test_missing_fields(self, client):
        response = client.post("/collab", json={"action": "create_room", "roomId": "r1"})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "MissingField"
        assert "roomData" in body["error"]

    def test_duplicate_room(self, client):
        create_room(client)

        response = create_room(client, user_id="u9")

        assert response.status_code == 409
        assert response.json()["code"] == "AlreadyExists"

    def test_get_updates_failure_keeps_polling_fields(self, client, clock):
        response = client.get("/collab", params={"action": "get_updates", "roomId": "gone", "userId": "u1"})

        assert response.status_code == 404
        body = response.json()
        assert body["code"] == "NotFound"
        assert body["updates"] == []
        assert body["users"] == []
        assert body["lastSync"] == clock.now

    def test_leave_never_fails(self, client):
        response = client.post("/collab", json={"action": "leave_room"})

        assert response.status_code == 200
        assert response.json() == {"success": True}

    @pytest.mark.parametrize("action", ["join_room", "leave_room", "create_room", "update_branch", "send_operation"])
    def test_get_rejects_state_changing_actions(self, client, action):
        create_room(client)

        response = client.get("/collab", params={"action": action, "roomId": "r1", "userId": "u1"})
        client.get("/collab", params={"action": action, "roomId": "r1", "userId": "crawler"})

        assert response.status_code == 400
        assert response.json()["code"] == "InvalidPayload"
        info = client.get("/collab", params={"action": "get_room_info", "roomId": "r1"})
        assert info.status_code == 200
        assert [u["id"] for u in info.json()["room"]["activeUsers"]] == ["u1"]

    def test_blank_last_sync_is_first_poll(self, client):
        create_room(client)
        client.post("/collab", json={"action": "send_operation", "roomId": "r1", "userId": "u2", "operation": {"type": "add"}})

        response = client.get("/collab?action=get_updates&roomId=r1&userId=u1&lastSync=")

        assert response.status_code == 200
        assert len(response.json()["updates"]) == 1

    def test_unexpected_error_is_json_with_cors(self, clock, id_factory):
        synchronizer = RoomSynchronizer(RoomRepository(BrokenStore()), clock=clock, id_factory=id_factory, rng=random.Random(1))
        with TestClient(create_app(synchronizer)) as client:
            origin = {"Origin": "https://mindmap.example"}
            info = client.get("/collab", params={"action": "get_room_info", "roomId": "r1"}, headers=origin)
            updates = client.get("/collab", params={"action": "get_updates", "roomId": "r1", "userId": "u1"}, headers=origin)
            leave = client.post("/collab", json={"action": "leave_room", "roomId": "r1", "userId": "u1"})

        assert info.status_code == 500
        assert info.json() == {"error": "Internal server error", "code": "InternalError"}
        assert info.headers["access-control-allow-origin"] == "*"
        assert updates.status_code == 500
        assert updates.json()["updates"] == []
        assert updates.json()["lastSync"] == clock.now
        assert leave.status_code == 200
        assert leave.json() == {"success": True}

    def test_store_unavailable(self, clock, id_factory):
        synchronizer = RoomSynchronizer(RoomRepository(FailingStore()), clock=clock, id_factory=id_factory, rng=random.Random(1))
        with TestClient(create_app(synchronizer)) as client:
            response = client.get("/collab", params={"action": "get_room_info", "roomId": "r1"})
            leave = client.post("/collab", json={"action": "leave_room", "roomId": "r1", "userId": "u1"})

        assert response.status_code == 503
        assert response.json()["code"] == "StoreUnavailable"
        assert leave.status_code == 200


class TestCors:
    def test_preflight_allows_any_origin(self, client):
        response = client.options("/collab", headers={
            "Origin": "https://mindmap.example",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type",
        })

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
