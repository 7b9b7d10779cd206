"""Chat service — doctor/patient chats and their message threads.

Learn: A chat document links exactly one doctor and one patient:

    chats/{chat_id} = {
        "doctor": uid, "patient": uid,
        "latest_message": {id, sender, type, summary, timestamp} | None,
        "doctor_seen": bool, "patient_seen": bool,
        "updated_at": iso8601,
    }

Messages live in the chats/{chat_id}/messages sub-collection, ordered by
timestamp. Posting a message refreshes the chat's latest_message summary
and flips the other party's *_seen flag to False, which is what drives
unread badges on the chat list.
"""

from datetime import datetime, timezone

from medrelay.errors import Forbidden, InvalidParams
from medrelay.events import types as ev
from medrelay.services.users import other_role
from medrelay.store.base import CancelHandle, DocumentStore

CHATS = "chats"

TEXT = "text"
IMAGE = "image"
SYSTEM = "system"
CLIENT_MESSAGE_TYPES = (TEXT, IMAGE)

SUMMARY_LENGTH = 100


def timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def chat_path(chat_id: str) -> str:
    return f"{CHATS}/{chat_id}"


def messages_path(chat_id: str) -> str:
    return f"{CHATS}/{chat_id}/messages"


def summarize(kind: str, content: str) -> str:
    if kind == IMAGE:
        return "Sent an image"
    return content[:SUMMARY_LENGTH]


async def require_participant(
    store: DocumentStore, chat_id: str, role: str, uid: str
) -> dict:
    """Load a chat the caller belongs to.

    Missing chats and chats of other users look the same to the caller.
    """
    chat = await store.get(chat_path(chat_id))
    if chat is None or chat.get(role) != uid:
        raise Forbidden("Not a chat participant")
    return chat


async def list_for(store: DocumentStore, role: str, uid: str) -> list[dict]:
    return await store.query(CHATS, [(role, uid)])


async def watch_for(store: DocumentStore, role: str, uid: str, push) -> CancelHandle:
    return await store.watch(
        CHATS, lambda chats: push(ev.CHATS, chats), filters=[(role, uid)]
    )


async def list_messages(store: DocumentStore, chat_id: str) -> list[dict]:
    return await store.query(messages_path(chat_id), order_by="timestamp")


async def watch_messages(store: DocumentStore, chat_id: str, push) -> CancelHandle:
    def on_snapshot(messages):
        push(ev.MESSAGES, {"chat_id": chat_id, "messages": messages})

    return await store.watch(messages_path(chat_id), on_snapshot, order_by="timestamp")


async def find_or_create(
    store: DocumentStore, role: str, uid: str, other_uid: str
) -> str:
    """Id of the chat between the caller and other_uid, created on first use."""
    other = other_role(role)
    existing = await store.query(CHATS, [(role, uid), (other, other_uid)])
    if existing:
        return existing[0]["id"]
    return await store.add(
        CHATS,
        {
            role: uid,
            other: other_uid,
            "latest_message": None,
            f"{role}_seen": True,
            f"{other}_seen": True,
            "updated_at": timestamp(),
        },
    )


async def append_message(
    store: DocumentStore,
    chat_id: str,
    role: str,
    uid: str,
    kind: str,
    content: str,
    **extra,
) -> str:
    """Add a message to a thread and refresh the chat's summary."""
    now = timestamp()
    message_id = await store.add(
        messages_path(chat_id),
        {"sender": uid, "type": kind, "content": content, "timestamp": now, **extra},
    )
    await store.update(
        chat_path(chat_id),
        {
            "latest_message": {
                "id": message_id,
                "sender": uid,
                "type": kind,
                "summary": summarize(kind, content),
                "timestamp": now,
            },
            f"{role}_seen": True,
            f"{other_role(role)}_seen": False,
            "updated_at": now,
        },
    )
    return message_id


async def post_message(
    store: DocumentStore, chat_id: str, role: str, uid: str, kind: str, content
) -> str:
    if kind not in CLIENT_MESSAGE_TYPES:
        raise InvalidParams(f"type must be one of {', '.join(CLIENT_MESSAGE_TYPES)}")
    if not isinstance(content, str) or not content:
        raise InvalidParams("content required")
    await require_participant(store, chat_id, role, uid)
    return await append_message(store, chat_id, role, uid, kind, content)


async def mark_seen(store: DocumentStore, chat_id: str, role: str, uid: str) -> None:
    await require_participant(store, chat_id, role, uid)
    await store.update(chat_path(chat_id), {f"{role}_seen": True})
