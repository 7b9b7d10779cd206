"""End-to-end websocket tests — real app, real JWTs, in-memory store.

Learn: Starlette's TestClient runs the app (lifespan included) in a
background event loop and gives us a blocking websocket client, so these
tests read like a client script: send a frame, read the next event.
"""

import time

import pytest
from fastapi.testclient import TestClient

from medrelay.auth.jwt import create_access_token
from medrelay.main import create_app


def receive_until(ws, name: str) -> dict:
    while True:
        event = ws.receive_json()
        if event["event"] == name:
            return event


def wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached")
        time.sleep(0.01)


@pytest.fixture()
def app(store):
    return create_app(store=store)


def test_full_session_over_websocket(app):
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "verify", "params": {"token": create_access_token("P1")}})
            assert ws.receive_json() == {"event": "verify-success", "data": {}}
            assert len(app.state.pool) == 1

            ws.send_json({"type": "get", "params": {"collection": "user", "ref": "r1", "uid": "P1"}})
            event = ws.receive_json()
            assert event["event"] == "get-success"
            assert event["data"]["ref"] == "r1"
            assert event["data"]["content"]["name"] == "Alex Karev"
            assert event["data"]["content"]["active"] is True

            ws.send_json({"type": "subscribe", "params": {"collection": "chats", "ref": "r2"}})
            event = ws.receive_json()
            assert event["event"] == "subscribe-success"
            assert event["data"]["ref"] == "r2"
            assert event["data"]["sid"]
            assert [c["id"] for c in receive_until(ws, "chats")["data"]] == ["C1"]

            ws.send_json({
                "type": "post",
                "params": {"collection": "message", "chat_id": "C1", "content": "hi", "ref": "p"},
            })
            pushed = receive_until(ws, "chats")
            assert pushed["data"][0]["latest_message"]["summary"] == "hi"
            assert "ref" not in pushed["data"][0]
            assert receive_until(ws, "post-success")["data"]["ref"] == "p"

        # Disconnect: the session leaves the pool and presence is cleared
        wait_for(lambda: len(app.state.pool) == 0)

        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "verify", "params": {"token": create_access_token("D1")}})
            assert ws.receive_json()["event"] == "verify-success"
            ws.send_json({"type": "get", "params": {"collection": "user", "uid": "P1"}})
            assert ws.receive_json()["data"]["content"]["active"] is False


def test_binary_frames_are_accepted(app):
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as ws:
            token = create_access_token("D1")
            ws.send_bytes(('{"type": "verify", "params": {"token": "%s"}}' % token).encode())
            assert ws.receive_json() == {"event": "verify-success", "data": {}}


def test_invalid_token_keeps_gate_closed(app):
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "verify", "params": {"token": "not-a-jwt", "ref": "v"}})
            event = ws.receive_json()
            assert event["event"] == "error"
            assert event["data"]["ref"] == "v"
            assert event["data"]["message"].startswith("Invalid token")

            # Dropped silently; the next answer is for the verify below
            ws.send_json({"type": "get", "params": {"collection": "doctors", "ref": "leak"}})
            ws.send_json({"type": "verify", "params": {"token": create_access_token("P1")}})
            assert ws.receive_json() == {"event": "verify-success", "data": {}}


def test_connections_get_distinct_ids(app):
    with TestClient(app) as client:
        with client.websocket_connect("/ws") as first, client.websocket_connect("/ws") as second:
            for ws, uid in ((first, "P1"), (second, "P2")):
                ws.send_json({"type": "verify", "params": {"token": create_access_token(uid)}})
                assert ws.receive_json()["event"] == "verify-success"
            assert len(app.state.pool) == 2
        wait_for(lambda: len(app.state.pool) == 0)
