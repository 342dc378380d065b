"""End-to-end tests for the HTTP and WebSocket routes."""

import asyncio
import time

import httpx
import pytest
from fastapi.testclient import TestClient

import main
from main import create_app
from storage import PersistenceError
from utilities import Settings

from conftest import FailingStore, until


@pytest.fixture
def settings():
    return Settings(store="memory", poll_wait_period=0.05)


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as client:
        yield client


def _send(client, author, body):
    resp = client.post("/send", json={"author": author, "body": body})
    assert resp.status_code == 200
    return resp.json()


class TestSend:
    def test_ack_confirms_id(self, client):
        ack = _send(client, "alice", "hi")
        assert ack["type"] == "ack"
        assert ack["id"] == 1

    def test_client_id_is_overwritten(self, client):
        resp = client.post("/send", json={"id": 99, "author": "alice", "body": "hi"})
        assert resp.json()["id"] == 1

    def test_messages_alias(self, client):
        resp = client.post("/messages", json={"username": "bob", "content": "yo"})
        assert resp.status_code == 200
        assert client.get("/history").json() == [{"id": 1, "author": "bob", "body": "yo"}]

    @pytest.mark.parametrize("payload", [
        {"author": "alice"},
        {"author": 3, "body": "hi"},
        ["alice", "hi"],
    ])
    def test_malformed_body_is_400(self, client, payload):
        assert client.post("/send", json=payload).status_code == 400

    def test_invalid_json_is_400(self, client):
        resp = client.post("/send", content=b"{not json", headers={"content-type": "application/json"})
        assert resp.status_code == 400

    def test_wrong_method_is_405(self, client):
        assert client.get("/send").status_code == 405

    def test_persistence_failure_is_500(self, client):
        client.app.state.broadcaster.store = FailingStore()
        resp = client.post("/send", json={"author": "alice", "body": "hi"})
        assert resp.status_code == 500
        assert client.get("/history").json() == []


class TestHistory:
    def test_empty_log_is_empty_list(self, client):
        resp = client.get("/past_messages")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_ordered_history(self, client):
        _send(client, "alice", "A")
        _send(client, "bob", "B")
        expected = [
            {"id": 1, "author": "alice", "body": "A"},
            {"id": 2, "author": "bob", "body": "B"},
        ]
        assert client.get("/past_messages").json() == expected
        assert client.get("/history").json() == expected

    def test_wrong_method_is_405(self, client):
        assert client.post("/past_messages").status_code == 405

    def test_unreadable_store_is_500(self, client):
        class Unreadable(FailingStore):
            async def load_all(self):
                raise PersistenceError("gone")

        client.app.state.store = Unreadable()
        assert client.get("/history").status_code == 500


class TestReceive:
    def test_timeout_is_204(self, client):
        resp = client.get("/receive")
        assert resp.status_code == 204
        assert resp.content == b""
        assert len(client.app.state.registry) == 0

    def test_wrong_method_is_405(self, client):
        assert client.post("/receive").status_code == 405


class TestWebSocket:
    def test_replay_then_live(self, client):
        _send(client, "alice", "A")
        _send(client, "alice", "B")
        _send(client, "alice", "C")

        with client.websocket_connect("/ws?watermark=1") as ws:
            assert ws.receive_json() == {"id": 2, "author": "alice", "body": "B"}
            assert ws.receive_json() == {"id": 3, "author": "alice", "body": "C"}

            ws.send_json({"author": "bob", "body": "D"})
            frames = [ws.receive_json(), ws.receive_json()]

        ack = next(f for f in frames if f.get("type") == "ack")
        live = next(f for f in frames if "type" not in f)
        assert ack["id"] == 4
        assert live == {"id": 4, "author": "bob", "body": "D"}

    def test_full_history_without_watermark(self, client):
        _send(client, "alice", "A")
        with client.websocket_connect("/ws") as ws:
            assert ws.receive_json()["id"] == 1

    def test_broadcast_reaches_other_connections(self, client):
        with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
            alice.send_json({"author": "alice", "body": "hi"})
            assert bob.receive_json() == {"id": 1, "author": "alice", "body": "hi"}

    def test_http_submission_reaches_websocket(self, client):
        with client.websocket_connect("/ws") as ws:
            # the session is registered once the server answers
            ws.send_text("ping")
            assert ws.receive_json()["type"] == "error"
            _send(client, "carol", "from http")
            assert ws.receive_json() == {"id": 1, "author": "carol", "body": "from http"}

    def test_bad_frame_keeps_connection(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"author": "alice"})
            err = ws.receive_json()
            assert err["type"] == "error"
            assert err["error"]["code"] == "BAD_REQUEST"

            ws.send_json({"author": "alice", "body": "fine"})
            frames = [ws.receive_json(), ws.receive_json()]
            assert any(f.get("type") == "ack" for f in frames)

    def test_disconnect_unregisters(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("ping")
            ws.receive_json()
            assert client.get("/health").json()["subscribers"] == 1

        deadline = time.monotonic() + 2
        while client.get("/health").json()["subscribers"]:
            assert time.monotonic() < deadline
            time.sleep(0.01)

    def test_reconnect_with_watermark(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"author": "alice", "body": "A"})
            frames = [ws.receive_json(), ws.receive_json()]
        last = next(f for f in frames if "type" not in f)["id"]

        _send(client, "bob", "B")
        with client.websocket_connect(f"/ws?watermark={last}") as ws:
            assert ws.receive_json() == {"id": 2, "author": "bob", "body": "B"}


class TestLogging:
    def test_module_logger(self):
        assert main.logger.name == "main"


class TestHealth:
    def test_counts(self, client):
        _send(client, "alice", "hi")
        body = client.get("/health").json()
        assert body["messages"] == 1
        assert body["subscribers"] == 0
        assert body["uptime_sec"] >= 0


class TestFileBackend:
    def test_ids_resume_after_restart(self, tmp_path):
        settings = Settings(store="file", storage_file=str(tmp_path / "chat.jsonl"))
        with TestClient(create_app(settings)) as client:
            _send(client, "alice", "A")
            _send(client, "bob", "B")

        with TestClient(create_app(settings)) as client:
            assert [m["id"] for m in client.get("/history").json()] == [1, 2]
            assert _send(client, "carol", "C")["id"] == 3


class TestLongPollScenario:
    @pytest.mark.asyncio
    async def test_pull_receives_earliest_submission(self):
        app = create_app(Settings(store="memory", poll_wait_period=5))
        async with app.router.lifespan_context(app):
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
                pull = asyncio.create_task(http.get("/receive"))
                await until(lambda: len(app.state.registry) == 1)

                first = await http.post("/send", json={"author": "alice", "body": "hi"})
                assert first.json()["id"] == 1

                second, third = await asyncio.gather(
                    http.post("/send", json={"author": "bob", "body": "yo"}),
                    http.post("/send", json={"author": "bob", "body": "yo"}),
                )
                assert sorted([second.json()["id"], third.json()["id"]]) == [2, 3]

                resp = await pull
                assert resp.status_code == 200
                assert resp.json() == {"id": 1, "author": "alice", "body": "hi"}
                assert len(app.state.registry) == 0

    @pytest.mark.asyncio
    async def test_pull_times_out_when_nothing_arrives(self):
        app = create_app(Settings(store="memory", poll_wait_period=0.05))
        async with app.router.lifespan_context(app):
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
                resp = await http.get("/receive")
        assert resp.status_code == 204
        assert len(app.state.registry) == 0
