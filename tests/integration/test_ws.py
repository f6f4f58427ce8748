"""Live channel end to end, over the test client's WebSocket support."""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from message_relay.api.deps import get_uow, get_uow_factory
from message_relay.app import create_app
from message_relay.config import settings
from tests.conftest import FakeMessageStore, FakeUoW, fake_uow_factory, make_token


@pytest.fixture
def store() -> FakeMessageStore:
    return FakeMessageStore()


@pytest.fixture
def app(store):
    app = create_app()

    async def _override():
        async with FakeUoW(store=store) as uow:
            yield uow

    app.dependency_overrides[get_uow] = _override
    app.dependency_overrides[get_uow_factory] = lambda: fake_uow_factory(store)
    return app


@pytest.fixture
def client(app):
    # Entering the client shares one event loop between all sockets.
    with TestClient(app) as client:
        yield client


def _join(ws, user_id: str) -> list[str]:
    ws.send_json({"type": "join", "data": make_token(user_id)})
    frame = ws.receive_json()
    assert frame["type"] == "update users"
    return frame["data"]


def _expect(ws, event: str) -> dict:
    frame = ws.receive_json()
    assert frame["type"] == event, frame
    return frame


def _unread(client, user_id: str) -> int:
    headers = {"Authorization": f"Bearer {make_token(user_id)}"}
    return client.get("/api/messages/unreadCount", headers=headers).json()["unreadCount"]


def test_join_registers_connection(client, app):
    with client.websocket_connect("/ws/chat") as ws:
        assert _join(ws, "alice") == ["alice"]
        assert app.state.registry.lookup("alice") is not None


def test_bad_join_token_closes_connection(client, app):
    with client.websocket_connect("/ws/chat") as ws:
        ws.send_json({"type": "join", "data": "garbage"})
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()
    assert exc_info.value.code == 4001
    assert len(app.state.registry) == 0


def test_frame_before_join_closes_connection(client):
    with client.websocket_connect("/ws/chat") as ws:
        ws.send_json({"type": "private message", "data": {"toUsername": "bob", "message": "hi"}})
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()
    assert exc_info.value.code == 4001


def test_join_grace_period_expires(client, monkeypatch):
    monkeypatch.setattr(settings, "WS_JOIN_TIMEOUT_SECONDS", 0.05)
    with client.websocket_connect("/ws/chat") as ws:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()
    assert exc_info.value.code == 4001


def test_query_token_authenticates_on_connect(client, app):
    with client.websocket_connect(f"/ws/chat?token={make_token('alice')}") as ws:
        assert _expect(ws, "update users")["data"] == ["alice"]


def test_query_token_rejected_before_accept(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/chat?token=garbage"):
            pass


def test_ping_before_join_is_answered(client):
    with client.websocket_connect("/ws/chat") as ws:
        ws.send_json({"type": "ping", "ref": "p1"})
        assert _expect(ws, "pong")["ref"] == "p1"
        assert _join(ws, "alice") == ["alice"]


def test_offline_send_then_read_scenario(client, store):
    with client.websocket_connect("/ws/chat") as alice:
        _join(alice, "alice")
        alice.send_json({
            "type": "private message",
            "data": {"toUsername": "bob", "message": "hi"},
            "ref": "m1",
        })
        echo = _expect(alice, "chat message")["data"]
        ack = _expect(alice, "ack")

        assert echo["from"] == "alice"
        assert echo["to"] == "bob"
        assert echo["isRead"] is False
        assert echo["timestamp"]
        assert ack["ref"] == "m1"
        assert ack["data"] == {"status": "ok", "delivery": "stored", "id": echo["id"]}

        assert _unread(client, "bob") == 1

        with client.websocket_connect("/ws/chat") as bob:
            assert _join(bob, "bob") == ["alice", "bob"]
            assert _expect(alice, "update users")["data"] == ["alice", "bob"]

            bob.send_json({"type": "read message", "data": {"toUsername": "alice"}, "ref": "r1"})
            read_ack = _expect(bob, "ack")
            assert read_ack["data"] == {"status": "ok", "modifiedCount": 1}

    assert _unread(client, "bob") == 0
    headers = {"Authorization": f"Bearer {make_token('alice')}"}
    history = client.get("/api/messages", headers=headers).json()
    assert [m["isRead"] for m in history["messages"]] == [True]


def test_online_recipient_receives_message(client):
    with client.websocket_connect("/ws/chat") as bob:
        _join(bob, "bob")
        with client.websocket_connect("/ws/chat") as alice:
            _join(alice, "alice")
            _expect(bob, "update users")

            alice.send_json({"type": "private message", "data": {"toUsername": "bob", "message": "hello"}})
            delivered = _expect(bob, "chat message")["data"]
            echo = _expect(alice, "chat message")["data"]
            ack = _expect(alice, "ack")["data"]

            assert delivered == echo
            assert ack["delivery"] == "delivered"

            bob.send_json({"type": "get unread count", "data": {"toUsername": "alice"}})
            response = _expect(bob, "unread count response")["data"]
            assert response == {"toUsername": "alice", "unreadCount": 1}


def test_invalid_send_gets_error_ack(client, store):
    with client.websocket_connect("/ws/chat") as alice:
        _join(alice, "alice")
        alice.send_json({"type": "private message", "data": {"toUsername": "bob", "message": ""}, "ref": "x"})
        ack = _expect(alice, "ack")

        assert ack["ref"] == "x"
        assert ack["data"]["status"] == "error"
        assert ack["data"]["code"] == "invalid_data"

        alice.send_json({"type": "private message", "data": {"toUsername": "bob"}})
        assert _expect(alice, "ack")["data"]["code"] == "invalid_data"
    assert store.rows == []


@pytest.mark.parametrize(
    "data",
    [
        {"toUsername": "b" * 200, "message": "hi"},
        {"toUsername": "bob", "message": "a\x00b"},
    ],
)
def test_unstorable_send_is_invalid_not_storage_error(client, store, data):
    with client.websocket_connect("/ws/chat") as alice:
        _join(alice, "alice")
        alice.send_json({"type": "private message", "data": data})
        ack = _expect(alice, "ack")

        assert ack["data"]["status"] == "error"
        assert ack["data"]["code"] == "invalid_data"
    assert store.rows == []


def test_storage_failure_gets_error_ack_and_no_echo(client, store):
    store.fail_writes = True
    with client.websocket_connect("/ws/chat") as alice:
        _join(alice, "alice")
        alice.send_json({"type": "private message", "data": {"toUsername": "bob", "message": "hi"}})
        ack = _expect(alice, "ack")

        assert ack["data"]["status"] == "error"
        assert ack["data"]["code"] == "storage_error"


def test_storage_failure_on_read_is_reported(client, store):
    store.fail_writes = True
    with client.websocket_connect("/ws/chat") as bob:
        _join(bob, "bob")
        bob.send_json({"type": "read message", "data": {"toUsername": "alice"}})

        assert _expect(bob, "error")["data"] == {"code": "storage_error"}


def test_unknown_and_malformed_frames(client):
    with client.websocket_connect("/ws/chat") as alice:
        _join(alice, "alice")

        alice.send_json({"type": "dance"})
        assert _expect(alice, "error")["data"] == {"code": "unknown_type", "type": "dance"}

        alice.send_text("{not json")
        assert _expect(alice, "error")["data"] == {"code": "invalid_payload"}

        alice.send_json({"type": "join", "data": make_token("bob")})
        assert _expect(alice, "error")["data"] == {"code": "already_joined"}


def test_second_connection_takes_over_delivery(client, app):
    registry = app.state.registry
    with client.websocket_connect("/ws/chat") as first:
        _join(first, "bob")
        with client.websocket_connect("/ws/chat") as second:
            # The superseded socket stays open but is no longer broadcast to.
            assert _join(second, "bob") == ["bob"]

            with client.websocket_connect("/ws/chat") as alice:
                _join(alice, "alice")
                _expect(second, "update users")

                alice.send_json({"type": "private message", "data": {"toUsername": "bob", "message": "yo"}})
                assert _expect(second, "chat message")["data"]["message"] == "yo"
                assert _expect(alice, "chat message")["data"]["message"] == "yo"

        # Bob's live registration went away with the newer socket.
        assert registry.lookup("bob") is None


def test_replaced_connection_is_closed_when_configured(client, app, monkeypatch):
    monkeypatch.setattr(settings, "WS_CLOSE_REPLACED_CONNECTIONS", True)
    with client.websocket_connect("/ws/chat") as first:
        _join(first, "bob")
        with client.websocket_connect("/ws/chat") as second:
            assert _join(second, "bob") == ["bob"]

            with pytest.raises(WebSocketDisconnect) as exc_info:
                first.receive_json()
            assert exc_info.value.code == 4002

            with client.websocket_connect("/ws/chat") as alice:
                _join(alice, "alice")
                _expect(second, "update users")

                alice.send_json({"type": "private message", "data": {"toUsername": "bob", "message": "yo"}})
                assert _expect(second, "chat message")["data"]["message"] == "yo"
                assert _expect(alice, "chat message")["data"]["message"] == "yo"
                assert _expect(alice, "ack")["data"]["delivery"] == "delivered"

            assert app.state.registry.online_users() == ["bob"]
