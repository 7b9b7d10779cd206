"""User profile service — profiles, roles, presence, doctor directory.

Learn: A user's profile lives at users/{uid}. Its "user_type" is the
user's role ("doctor" or "patient"), and the role doubles as the field
name that links appointments and chats back to the user:
an appointment {"doctor": "D1", "patient": "P1"} belongs to D1 as a
doctor and to P1 as a patient.
"""

from typing import Optional

from medrelay.errors import Forbidden
from medrelay.events import types as ev
from medrelay.store.base import CancelHandle, DocumentStore

USERS = "users"

DOCTOR = "doctor"
PATIENT = "patient"
ROLES = (DOCTOR, PATIENT)


def user_path(uid: str) -> str:
    return f"{USERS}/{uid}"


def other_role(role: str) -> str:
    return PATIENT if role == DOCTOR else DOCTOR


def role_of(profile: Optional[dict]) -> str:
    """The role stored on a profile. Raises Forbidden if there is none."""
    role = (profile or {}).get("user_type")
    if role not in ROLES:
        raise Forbidden("Profile has no role")
    return role


async def get_profile(store: DocumentStore, uid: str) -> Optional[dict]:
    return await store.get(user_path(uid))


async def set_active(store: DocumentStore, uid: str, active: bool) -> None:
    """Persist the presence flag without touching the rest of the profile."""
    await store.set(user_path(uid), {"active": active}, merge=True)


async def replace_profile(store: DocumentStore, uid: str, data: dict) -> dict:
    """Replace the whole profile. The presence flag is server-owned and kept."""
    current = await get_profile(store, uid) or {}
    data = {k: v for k, v in data.items() if k != "active"}
    if "active" in current:
        data["active"] = current["active"]
    await store.set(user_path(uid), data)
    return data


async def list_doctors(
    store: DocumentStore, specialty: Optional[str] = None
) -> list[dict]:
    """Doctor directory, optionally narrowed to one specialty."""
    filters = [("user_type", DOCTOR)]
    if specialty:
        filters.append(("specialty", specialty))
    doctors = await store.query(USERS, filters)
    return [{"uid": doc.pop("id"), **doc} for doc in doctors]


async def watch_profile(store: DocumentStore, uid: str, push) -> CancelHandle:
    def on_snapshot(profile):
        push(ev.USER, {"uid": uid, **(profile or {})})

    return await store.watch(user_path(uid), on_snapshot)
