"""Operation dispatcher — request type → handler.

Learn: Routing is two-level. The request "type" picks the operation
(verify, subscribe, unsubscribe, get, post, logout); for subscribe, get
and post the "collection" param then picks the concrete handler from a
fixed table. A miss at either level raises UnknownOperation /
UnknownCollection and the session decides whether to stay silent or
report it (strict mode).

Handlers read only the session's subject (uid, role) and the data
store. Every one-shot operation emits exactly one correlated success
event; failures propagate as RelayError for the session to report.
"""

from typing import TYPE_CHECKING, Any, Awaitable, Callable

from medrelay.errors import InvalidParams, UnknownCollection, UnknownOperation
from medrelay.events import types as ev
from medrelay.schemas.envelope import Request, correlated
from medrelay.services import appointments, chats, users
from medrelay.store.base import CancelHandle, DocumentStore

if TYPE_CHECKING:
    from medrelay.realtime.session import Session

Params = dict[str, Any]


def require_id(params: Params, key: str) -> str:
    """A document id param: non-empty string, no path separators."""
    value = params.get(key)
    if not isinstance(value, str) or not value or "/" in value:
        raise InvalidParams(f"{key} required")
    return value


class OperationDispatcher:
    """Fixed routing table over one data store."""

    def __init__(self, store: DocumentStore):
        self.store = store
        self.operations: dict[str, Callable[["Session", Params], Awaitable[None]]] = {
            ev.VERIFY: self.verify,
            ev.SUBSCRIBE: self.subscribe,
            ev.UNSUBSCRIBE: self.unsubscribe,
            ev.GET: self.get,
            ev.POST: self.post,
            ev.LOGOUT: self.logout,
        }
        self.live_queries = {
            ev.COLLECTION_APPOINTMENTS: self._watch_appointments,
            ev.COLLECTION_CHATS: self._watch_chats,
            ev.COLLECTION_MESSAGES: self._watch_messages,
            ev.COLLECTION_USER: self._watch_user,
        }
        self.reads = {
            ev.COLLECTION_APPOINTMENTS: self._get_appointments,
            ev.COLLECTION_CHATS: self._get_chats,
            ev.COLLECTION_MESSAGES: self._get_messages,
            ev.COLLECTION_USER: self._get_user,
            ev.COLLECTION_DOCTORS: self._get_doctors,
            ev.COLLECTION_CHAT_ID: self._get_chat_id,
        }
        self.writes = {
            ev.COLLECTION_USER: self._post_user,
            ev.COLLECTION_MESSAGE: self._post_message,
            ev.COLLECTION_SEEN: self._post_seen,
            ev.COLLECTION_APPOINTMENT: self._post_appointment,
        }

    async def dispatch(self, session: "Session", request: Request) -> None:
        handler = self.operations.get(request.type)
        if handler is None:
            raise UnknownOperation()
        await handler(session, request.params)

    @staticmethod
    def _route(table: dict, params: Params):
        collection = params.get("collection")
        if not isinstance(collection, str):
            raise UnknownCollection()
        handler = table.get(collection)
        if handler is None:
            raise UnknownCollection()
        return handler

    # ─── Session state ────────────────────────────────────

    async def verify(self, session: "Session", params: Params) -> None:
        await session.verify(params.get("token"), params.get("ref"))

    async def logout(self, session: "Session", params: Params) -> None:
        await session.logout()

    # ─── Subscriptions ────────────────────────────────────

    async def subscribe(self, session: "Session", params: Params) -> None:
        open_live_query = self._route(self.live_queries, params)
        handle = await open_live_query(session, params)
        sid = session.subscriptions.add(handle)
        session.emit(ev.SUBSCRIBE_SUCCESS, correlated(params.get("ref"), sid=sid))

    async def unsubscribe(self, session: "Session", params: Params) -> None:
        sid = params.get("sid")
        if isinstance(sid, str):
            session.subscriptions.remove_and_cancel(sid)

    async def _watch_appointments(self, session, params) -> CancelHandle:
        return await appointments.watch_for(self.store, session.role, session.uid, session.emit)

    async def _watch_chats(self, session, params) -> CancelHandle:
        return await chats.watch_for(self.store, session.role, session.uid, session.emit)

    async def _watch_messages(self, session, params) -> CancelHandle:
        chat_id = require_id(params, "chat_id")
        await chats.require_participant(self.store, chat_id, session.role, session.uid)
        return await chats.watch_messages(self.store, chat_id, session.emit)

    async def _watch_user(self, session, params) -> CancelHandle:
        return await users.watch_profile(self.store, require_id(params, "uid"), session.emit)

    # ─── One-shot reads ───────────────────────────────────

    async def get(self, session: "Session", params: Params) -> None:
        read = self._route(self.reads, params)
        content = await read(session, params)
        session.emit(ev.GET_SUCCESS, correlated(params.get("ref"), content=content))

    async def _get_appointments(self, session, params):
        return await appointments.list_for(self.store, session.role, session.uid)

    async def _get_chats(self, session, params):
        return await chats.list_for(self.store, session.role, session.uid)

    async def _get_messages(self, session, params):
        chat_id = require_id(params, "chat_id")
        await chats.require_participant(self.store, chat_id, session.role, session.uid)
        return await chats.list_messages(self.store, chat_id)

    async def _get_user(self, session, params):
        return await users.get_profile(self.store, require_id(params, "uid"))

    async def _get_doctors(self, session, params):
        specialty = params.get("specialty")
        if specialty is not None and not isinstance(specialty, str):
            raise InvalidParams("specialty must be a string")
        return await users.list_doctors(self.store, specialty)

    async def _get_chat_id(self, session, params):
        other_uid = require_id(params, "uid")
        chat_id = await chats.find_or_create(self.store, session.role, session.uid, other_uid)
        return {"chat_id": chat_id}

    # ─── One-shot writes ──────────────────────────────────

    async def post(self, session: "Session", params: Params) -> None:
        write = self._route(self.writes, params)
        content = await write(session, params)
        data = correlated(params.get("ref"))
        if content is not None:
            data["content"] = content
        session.emit(ev.POST_SUCCESS, data)

    async def _post_user(self, session, params):
        data = params.get("data")
        if not isinstance(data, dict):
            raise InvalidParams("data must be an object")
        session.user = await users.replace_profile(self.store, session.uid, data)
        return None

    async def _post_message(self, session, params):
        chat_id = require_id(params, "chat_id")
        message_id = await chats.post_message(
            self.store,
            chat_id,
            session.role,
            session.uid,
            params.get("type", chats.TEXT),
            params.get("content"),
        )
        return {"id": message_id}

    async def _post_seen(self, session, params):
        chat_id = require_id(params, "chat_id")
        await chats.mark_seen(self.store, chat_id, session.role, session.uid)
        return None

    async def _post_appointment(self, session, params):
        return await appointments.create(
            self.store, session.role, session.uid, params.get("data")
        )
