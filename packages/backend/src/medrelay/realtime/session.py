"""Session — the protocol state machine bound to one connection.

Learn: A session is UNAUTHENTICATED until a "verify" request succeeds,
AUTHENTICATED until "logout" (then back to UNAUTHENTICATED, and the cycle
can repeat), and CLOSED once the transport goes away.

Two tasks run per session:
1. Dispatcher — pulls frames off the inbox one at a time and runs each
   request to completion (store calls included) before the next one, so
   requests on the same session never interleave their state changes.
2. Writer — drains the outbox onto the transport. Every outgoing event,
   whether a correlated response or a live-query push, goes through it,
   so the transport only ever has one sender.

Frames keep being ACCEPTED into the inbox while a request is running;
they are only APPLIED in order.

Fail-closed gate: until verify succeeds, everything except verify is
dropped without a reply.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol

import structlog

from medrelay.auth.verifier import IdentityVerifier, InvalidToken
from medrelay.config import settings
from medrelay.errors import (
    ProtocolError,
    RelayError,
    StoreError,
    UnknownCollection,
    UnknownOperation,
)
from medrelay.events import types as ev
from medrelay.realtime.dispatch import OperationDispatcher
from medrelay.realtime.registry import SubscriptionRegistry
from medrelay.schemas.envelope import correlated, decode_request, encode_event
from medrelay.services import users
from medrelay.store.base import DocumentStore

logger = structlog.get_logger()


class Transport(Protocol):
    async def send(self, text: str) -> None:
        ...


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


@dataclass
class SessionConfig:
    """Per-session protocol knobs."""
    verify_timeout: float = 10.0
    request_timeout: float = 15.0
    strict_errors: bool = False
    inbox_size: int = 256

    @classmethod
    def from_settings(cls) -> "SessionConfig":
        return cls(
            verify_timeout=settings.verify_timeout_seconds,
            request_timeout=settings.request_timeout_seconds,
            strict_errors=settings.strict_errors,
            inbox_size=settings.inbox_size,
        )


class Session:
    """One client connection: auth state, subscriptions, request pipeline."""

    def __init__(
        self,
        connection_id: str,
        transport: Transport,
        store: DocumentStore,
        verifier: IdentityVerifier,
        *,
        config: Optional[SessionConfig] = None,
        on_close: Optional[Callable[[str], Any]] = None,
        dispatcher: Optional[OperationDispatcher] = None,
    ):
        self.id = connection_id
        self.store = store
        self.verifier = verifier
        self.config = config or SessionConfig()
        self.dispatcher = dispatcher or OperationDispatcher(store)

        # Subject: populated by verify, cleared by logout/close
        self.uid: Optional[str] = None
        self.user: Optional[dict] = None
        self.subscriptions = SubscriptionRegistry()

        self._transport = transport
        self._on_close = on_close
        self._inbox: asyncio.Queue = asyncio.Queue(maxsize=self.config.inbox_size)
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []
        self._closed = False

    # ─── State ────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        if self._closed:
            return SessionState.CLOSED
        if self.uid is None:
            return SessionState.UNAUTHENTICATED
        return SessionState.AUTHENTICATED

    @property
    def authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED

    @property
    def role(self) -> str:
        return users.role_of(self.user)

    # ─── Lifecycle ────────────────────────────────────────

    def start(self) -> None:
        """Spawn the dispatcher and writer tasks."""
        if self._tasks or self._closed:
            return
        self._tasks = [
            asyncio.create_task(self._dispatch_loop()),
            asyncio.create_task(self._write_loop()),
        ]
        logger.info("session.started", connection_id=self.id)

    async def feed(self, frame: str | bytes) -> None:
        """Accept one inbound frame. Waits if the inbox is full."""
        if self._closed:
            return
        await self._inbox.put(frame)

    async def drain(self) -> None:
        """Wait until every accepted frame is handled and every event sent."""
        await self._inbox.join()
        await self._outbox.join()

    async def close(self) -> None:
        """Transport closed: tear everything down exactly once."""
        if self._closed:
            return
        self._closed = True

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

        try:
            cancelled = self.subscriptions.cancel_all()
            uid, self.uid, self.user = self.uid, None, None
            if uid is not None:
                await self._mark_inactive(uid)
            logger.info("session.closed", connection_id=self.id, uid=uid, cancelled=cancelled)
        finally:
            if self._on_close:
                self._on_close(self.id)

    # ─── Outbound ─────────────────────────────────────────

    def emit(self, event: str, data: Any = None) -> None:
        """Queue an event for the client. Dropped once the session is closed."""
        if self._closed:
            return
        self._outbox.put_nowait(encode_event(event, data))

    async def _write_loop(self) -> None:
        while True:
            text = await self._outbox.get()
            try:
                await self._transport.send(text)
            except Exception as e:
                # Transport is going away; close() follows from the reader side
                logger.warning("session.send_failed", connection_id=self.id, error=str(e))
            finally:
                self._outbox.task_done()

    # ─── Inbound ──────────────────────────────────────────

    async def _dispatch_loop(self) -> None:
        while True:
            frame = await self._inbox.get()
            try:
                await self.handle_frame(frame)
            finally:
                self._inbox.task_done()

    async def handle_frame(self, frame: str | bytes) -> None:
        """Decode, gate and dispatch one request."""
        try:
            request = decode_request(frame)
        except ProtocolError as e:
            logger.warning("session.malformed_frame", connection_id=self.id, size=len(frame))
            if self.config.strict_errors:
                self.emit(ev.ERROR, {"message": e.message})
            return

        if request.type != ev.VERIFY and not self.authenticated:
            logger.debug("session.frame_dropped", connection_id=self.id, type=request.type)
            return

        timeout = (
            self.config.verify_timeout
            if request.type == ev.VERIFY
            else self.config.request_timeout
        )
        try:
            await asyncio.wait_for(self.dispatcher.dispatch(self, request), timeout)
        except (UnknownOperation, UnknownCollection) as e:
            logger.info(
                "session.unknown_request",
                connection_id=self.id,
                type=request.type,
                collection=request.params.get("collection"),
            )
            if self.config.strict_errors:
                self.emit(ev.ERROR, correlated(request.ref, message=e.message))
        except RelayError as e:
            logger.info(
                "session.request_failed",
                connection_id=self.id,
                type=request.type,
                error=e.message,
            )
            self.emit(ev.ERROR, correlated(request.ref, message=e.message))
        except asyncio.TimeoutError:
            logger.warning(
                "session.request_timeout",
                connection_id=self.id,
                type=request.type,
                timeout=timeout,
            )
            self.emit(ev.ERROR, correlated(request.ref, message="Request timed out"))
        except Exception:
            logger.exception("session.request_crashed", connection_id=self.id, type=request.type)
            self.emit(ev.ERROR, correlated(request.ref, message="Internal error"))

    # ─── Transitions ──────────────────────────────────────

    async def verify(self, token: Any, ref: Any = None) -> None:
        """UNAUTHENTICATED + verify(token) → AUTHENTICATED, or an error event."""
        try:
            uid = await self.verifier.verify(token)
        except InvalidToken as e:
            logger.info("session.verify_failed", connection_id=self.id, error=e.message)
            raise

        profile = await users.get_profile(self.store, uid)

        previous = self.uid
        if previous is not None and previous != uid:
            # Re-verify as someone else: the old subject's streams must not survive
            await self._sign_out()
        # Own the subject before writing presence so teardown always clears it
        self.uid = uid
        self.user = profile
        try:
            await users.set_active(self.store, uid, True)
        except BaseException:
            if previous != uid:
                self.uid, self.user = None, None
                await self._mark_inactive(uid)
            raise

        logger.info("session.verified", connection_id=self.id, uid=uid)
        self.emit(ev.VERIFY_SUCCESS, correlated(ref))

    async def logout(self) -> None:
        """AUTHENTICATED + logout → UNAUTHENTICATED. No event is emitted."""
        logger.info("session.logout", connection_id=self.id, uid=self.uid)
        await self._sign_out()

    async def _sign_out(self) -> None:
        uid, self.uid, self.user = self.uid, None, None
        self.subscriptions.cancel_all()
        if uid is not None:
            await self._mark_inactive(uid)

    async def _mark_inactive(self, uid: str) -> None:
        try:
            await asyncio.wait_for(
                users.set_active(self.store, uid, False), self.config.request_timeout
            )
        except (StoreError, asyncio.TimeoutError) as e:
            logger.warning("session.presence_failed", connection_id=self.id, uid=uid, error=repr(e))
