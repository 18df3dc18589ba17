"""Tests for the room server HTTP surface."""

import pytest
from starlette.testclient import TestClient

from roomflow.core.clock import MINUTE_MS
from roomflow.flow.admission import AdmissionController
from roomflow.security.validation import SecurityMonitor
from roomflow.server.app import RoomServer
from roomflow.server.event_buffer import EventBuffer
from roomflow.server.store import RoomStore


@pytest.fixture
def server(clock) -> RoomServer:
    return RoomServer(
        store=RoomStore(clock=clock),
        admission=AdmissionController(clock=clock),
        event_buffer=EventBuffer(clock=clock),
        monitor=SecurityMonitor(clock=clock),
    )


@pytest.fixture
def client(server) -> TestClient:
    return TestClient(server.app)


def join(client: TestClient, name: str, kind: str = "human") -> None:
    response = client.post("/join", json={"name": name, "type": kind})
    assert response.status_code == 200


def send(client: TestClient, sender: str, content: str, **extra):
    return client.post("/messages", json={"sender": sender, "content": content, **extra})


class TestJoin:
    def test_join_returns_member(self, client):
        response = client.post("/join", json={"name": "alice", "type": "human"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["name"] == "alice"
        assert body["data"]["type"] == "human"

    def test_join_records_event_and_broadcasts(self, server, client):
        _, queue = server.subscribe()
        join(client, "alice")

        assert queue.get_nowait() == ("join", {"name": "alice", "type": "human"})
        assert client.get("/events").json()[0]["name"] == "alice"

    @pytest.mark.parametrize(
        "body", [{"name": "alice"}, {"type": "human"}, {"name": "alice", "type": "robot"}]
    )
    def test_join_rejects_bad_body(self, client, body):
        assert client.post("/join", json=body).status_code == 400

    def test_members(self, client):
        join(client, "alice")
        join(client, "Bot", "agent")
        assert [m["name"] for m in client.get("/members").json()] == ["alice", "Bot"]


class TestPostMessage:
    def test_human_message_stored_and_broadcast(self, server, client):
        join(client, "alice")
        _, queue = server.subscribe()

        response = send(client, "alice", "hi <i>@Bot</i>")

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["content"] == "hi @Bot"
        assert data["mentions"] == ["Bot"]
        assert data["senderType"] == "human"
        event, payload = queue.get_nowait()
        assert event == "message"
        assert payload["id"] == data["id"]

    def test_missing_fields(self, client):
        assert send(client, "alice", "").status_code == 400

    def test_unknown_sender(self, client):
        assert send(client, "ghost", "boo").status_code == 404

    def test_invalid_content_is_recorded(self, server, client):
        join(client, "alice")

        response = send(client, "alice", "aaaaaaaaaaaaaaa")

        assert response.status_code == 400
        assert server.monitor.get_stats()["byType"] == {"input_violation": 1}

    def test_muted_sender(self, server, client):
        join(client, "alice")
        server.mute_member("alice", 60_000)

        assert send(client, "alice", "let me talk").status_code == 403

    def test_min_interval_between_sends(self, client, clock):
        join(client, "alice")
        send(client, "alice", "one")
        clock.advance(1000)

        response = send(client, "alice", "two")

        assert response.status_code == 429
        assert response.json()["retryAfter"] == 4000

        clock.advance(4000)
        assert send(client, "alice", "two").status_code == 201

    def test_consecutive_agent_limit(self, client, clock):
        for name in ("bot1", "bot2", "bot3", "bot4"):
            join(client, name, "agent")
        for i in range(7):
            join(client, f"human{i}")
            send(client, f"human{i}", "hello room")

        for name in ("bot1", "bot2", "bot3"):
            assert send(client, name, f"{name} here").status_code == 201

        response = send(client, "bot4", "me too")

        assert response.status_code == 429
        assert "consecutive" in response.json()["error"]

    def test_mention_reply_bypasses_legacy_checks(self, client, clock):
        join(client, "alice")
        join(client, "Bot", "agent")
        for i in range(3):
            join(client, f"human{i}")
            send(client, f"human{i}", "hi")

        assert send(client, "Bot", "first", isMentionReply=True).status_code == 201
        assert send(client, "Bot", "second", isMentionReply=True).status_code == 201
        assert send(client, "Bot", "third").status_code == 429

    def test_global_agent_window(self, client):
        for i in range(7):
            join(client, f"human{i}")
            send(client, f"human{i}", "hello room")
        for i in range(16):
            join(client, f"agent{i}", "agent")

        for i in range(15):
            response = send(client, f"agent{i}", "reporting in", isMentionReply=True)
            assert response.status_code == 201

        response = send(client, "agent15", "me too", isMentionReply=True)

        assert response.status_code == 429
        body = response.json()
        assert "Global" in body["error"]
        assert 0 < body["retryAfter"] <= 60_000

    def test_reply_to_is_stored(self, client, clock):
        join(client, "alice")
        join(client, "bob")
        parent = send(client, "alice", "question?").json()["data"]

        reply = send(client, "bob", "answer", replyTo=parent["id"]).json()["data"]

        assert reply["replyTo"] == parent["id"]


class TestReadEndpoints:
    def test_get_messages_since_and_limit(self, client, clock):
        join(client, "alice")
        for i in range(3):
            send(client, "alice", f"m{i}")
            clock.advance(5000)

        messages = client.get("/messages", params={"limit": 2}).json()
        assert [m["content"] for m in messages] == ["m1", "m2"]

        since = messages[0]["timestamp"]
        assert [m["content"] for m in client.get("/messages", params={"since": since}).json()] == ["m2"]

    def test_bad_query(self, client):
        assert client.get("/messages", params={"limit": "many"}).status_code == 400

    def test_health(self, client):
        join(client, "alice")
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["members"] == 1

    def test_activity(self, client, clock):
        join(client, "alice")
        send(client, "alice", "hi")
        assert client.get("/activity").json()["isIdle"] is False

        clock.advance(60_000)

        assert client.get("/activity").json()["isIdle"] is True

    def test_request_turn(self, client):
        first = client.post("/proactive/request-turn", json={"agentName": "Bot"}).json()
        second = client.post("/proactive/request-turn", json={"agentName": "Other"}).json()

        assert first["data"]["granted"] is True
        assert second["data"]["granted"] is False
        assert client.post("/proactive/request-turn", json={}).status_code == 400


class TestModeration:
    def test_kick_announces_and_removes(self, server, client):
        join(client, "troll")
        _, queue = server.subscribe()

        assert server.kick_member("troll") is True
        assert queue.get_nowait() == ("kick", {"name": "troll"})
        assert client.get("/members").json() == []
        assert server.kick_member("troll") is False

    def test_kick_drops_rate_state(self, server, client):
        join(client, "bot", "agent")
        send(client, "bot", "hello there")
        assert server.admission.tracked_identities() == ["bot"]

        server.kick_member("bot")

        assert server.admission.tracked_identities() == []

    def test_unmute(self, server, client):
        join(client, "alice")
        server.mute_member("alice", 60_000)
        server.unmute_member("alice")

        assert send(client, "alice", "free again").status_code == 201

    def test_cleanup_inactive_broadcasts_leave(self, server, client, clock):
        join(client, "sleepy")
        _, queue = server.subscribe()
        clock.advance(31 * MINUTE_MS)

        assert server.cleanup_inactive() == ["sleepy"]
        assert queue.get_nowait() == ("leave", {"name": "sleepy"})

    def test_unsubscribe(self, server):
        client_id, _ = server.subscribe()
        assert server.subscriber_count == 1
        server.unsubscribe(client_id)
        assert server.subscriber_count == 0
