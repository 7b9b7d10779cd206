"""Appointment service.

Learn: Booking an appointment writes two things: the appointment
document, and a "system" message in the chat between the two parties
(created if they have never talked) so both sides see the booking in
their conversation.
"""

from medrelay.errors import InvalidParams
from medrelay.events import types as ev
from medrelay.services import chats
from medrelay.services.users import other_role
from medrelay.store.base import CancelHandle, DocumentStore

APPOINTMENTS = "appointments"


async def list_for(store: DocumentStore, role: str, uid: str) -> list[dict]:
    return await store.query(APPOINTMENTS, [(role, uid)])


async def watch_for(store: DocumentStore, role: str, uid: str, push) -> CancelHandle:
    return await store.watch(
        APPOINTMENTS,
        lambda appointments: push(ev.APPOINTMENTS, appointments),
        filters=[(role, uid)],
    )


async def create(store: DocumentStore, role: str, uid: str, data) -> dict:
    """Book an appointment on behalf of the caller.

    The caller's own role field is always the caller; the other party's
    uid must be supplied in data.
    """
    if not isinstance(data, dict):
        raise InvalidParams("data must be an object")
    other = other_role(role)
    other_uid = data.get(other)
    if not isinstance(other_uid, str) or not other_uid or "/" in other_uid:
        raise InvalidParams(f"data.{other} required")

    appointment = {**data, role: uid, "created_at": chats.timestamp()}
    appointment_id = await store.add(APPOINTMENTS, appointment)

    chat_id = await chats.find_or_create(store, role, uid, other_uid)
    when = data.get("time") or "an unscheduled time"
    await chats.append_message(
        store,
        chat_id,
        role,
        uid,
        chats.SYSTEM,
        f"Appointment booked for {when}",
        appointment_id=appointment_id,
    )
    return {"id": appointment_id, "chat_id": chat_id}
