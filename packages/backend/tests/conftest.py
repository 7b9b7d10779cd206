"""Test fixtures — in-memory store, fake identity provider, recorded transport.

Learn: Sessions are tested without a socket. A RecordingTransport stands
in for the websocket and collects every event the session sends, and a
StaticVerifier accepts tokens of the form "token-<uid>". Each test gets
a freshly seeded MemoryDocumentStore, so no Postgres or Redis is needed.
"""

import asyncio
import json

import pytest
import pytest_asyncio

from medrelay.auth.verifier import InvalidToken
from medrelay.realtime.session import Session, SessionConfig
from medrelay.store.memory import MemoryDocumentStore

SEED = {
    "users/D1": {"name": "Dr. Meredith Grey", "user_type": "doctor", "specialty": "cardiology"},
    "users/D2": {"name": "Dr. Derek Shepherd", "user_type": "doctor", "specialty": "neurology"},
    "users/P1": {"name": "Alex Karev", "user_type": "patient"},
    "users/P2": {"name": "Izzie Stevens", "user_type": "patient"},
    "users/N1": {"name": "No Role"},
    "appointments/A1": {"doctor": "D1", "patient": "P1", "time": "2026-10-20T09:00"},
    "appointments/A2": {"doctor": "D2", "patient": "P2", "time": "2026-10-21T14:30"},
    "chats/C1": {
        "doctor": "D1",
        "patient": "P1",
        "latest_message": None,
        "doctor_seen": True,
        "patient_seen": True,
    },
    "chats/C1/messages/M2": {
        "sender": "P1", "type": "text", "content": "Thanks!",
        "timestamp": "2020-01-01T10:05:00+00:00",
    },
    "chats/C1/messages/M1": {
        "sender": "D1", "type": "text", "content": "Hello",
        "timestamp": "2020-01-01T10:00:00+00:00",
    },
}


class StaticVerifier:
    """Accepts "token-<uid>", rejects everything else."""

    def __init__(self):
        self.calls = []

    async def verify(self, token):
        self.calls.append(token)
        if isinstance(token, str) and token.startswith("token-"):
            return token[len("token-"):]
        raise InvalidToken("Invalid token")


class RecordingTransport:
    """Collects decoded events sent by a session."""

    def __init__(self):
        self.sent = []
        self.events: asyncio.Queue = asyncio.Queue()

    async def send(self, text: str) -> None:
        event = json.loads(text)
        self.sent.append(event)
        self.events.put_nowait(event)

    async def next_event(self, timeout: float = 1.0) -> dict:
        return await asyncio.wait_for(self.events.get(), timeout)


class Client:
    """Drives one session the way a websocket client would."""

    def __init__(self, session: Session, transport: RecordingTransport, closed: list):
        self.session = session
        self.transport = transport
        self.closed = closed

    async def send(self, type_: str, **params) -> None:
        await self.session.feed(json.dumps({"type": type_, "params": params}))

    async def request(self, type_: str, **params) -> dict:
        """Send a request and return the next event."""
        await self.send(type_, **params)
        return await self.transport.next_event()

    async def login(self, uid: str) -> None:
        event = await self.request("verify", token=f"token-{uid}")
        assert event == {"event": "verify-success", "data": {}}

    async def settle(self) -> None:
        """Let queued requests, live-query callbacks and writes finish."""
        await asyncio.sleep(0)
        await self.session.drain()
        await asyncio.sleep(0)
        await self.session.drain()

    async def assert_silent(self) -> None:
        await self.settle()
        assert self.transport.events.empty(), self.transport.events.get_nowait()

    async def until(self, event_name: str) -> dict:
        """Skip events until one with the given name arrives."""
        while True:
            event = await self.transport.next_event()
            if event["event"] == event_name:
                return event


@pytest.fixture()
def store():
    return MemoryDocumentStore(initial=SEED)


@pytest.fixture()
def verifier():
    return StaticVerifier()


@pytest.fixture()
def session_config():
    return SessionConfig(verify_timeout=1.0, request_timeout=1.0)


@pytest_asyncio.fixture()
async def connect(store, verifier, session_config):
    """Factory fixture — open any number of started sessions on one store."""
    clients = []

    def _connect(connection_id: str = "conn-1", config: SessionConfig | None = None) -> Client:
        closed = []
        transport = RecordingTransport()
        session = Session(
            connection_id,
            transport,
            store,
            verifier,
            config=config or session_config,
            on_close=closed.append,
        )
        session.start()
        client = Client(session, transport, closed)
        clients.append(client)
        return client

    yield _connect

    for client in clients:
        await client.session.close()


@pytest_asyncio.fixture()
async def client(connect):
    return connect()
