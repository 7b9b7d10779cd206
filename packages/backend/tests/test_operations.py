"""One-shot get/post tests.

Learn: Every get/post answers with exactly one correlated event:
get-success {ref, content}, post-success {ref[, content]}, or an error
carrying the same ref.
"""

import pytest


# ═══════════════════════════════════════════════════════════
# get
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_get_appointments_for_doctor(client):
    await client.login("D1")
    event = await client.request("get", collection="appointments", ref="g1")
    assert event["event"] == "get-success"
    assert event["data"]["ref"] == "g1"
    assert [a["id"] for a in event["data"]["content"]] == ["A1"]


@pytest.mark.asyncio
async def test_get_chats_for_patient(client):
    await client.login("P2")
    event = await client.request("get", collection="chats", ref="g")
    assert event == {"event": "get-success", "data": {"ref": "g", "content": []}}


@pytest.mark.asyncio
async def test_get_doctors_directory(client):
    await client.login("P1")
    event = await client.request("get", collection="doctors", ref="all")
    assert sorted(d["uid"] for d in event["data"]["content"]) == ["D1", "D2"]

    event = await client.request("get", collection="doctors", specialty="neurology", ref="neuro")
    assert event["data"]["ref"] == "neuro"
    assert [d["uid"] for d in event["data"]["content"]] == ["D2"]
    assert "id" not in event["data"]["content"][0]


@pytest.mark.asyncio
async def test_get_missing_user_returns_null_content(client):
    await client.login("P1")
    event = await client.request("get", collection="user", uid="ghost", ref="x")
    assert event == {"event": "get-success", "data": {"ref": "x", "content": None}}


@pytest.mark.asyncio
async def test_get_rejects_path_like_ids(client):
    await client.login("P1")
    event = await client.request("get", collection="user", uid="../chats/C1", ref="x")
    assert event == {"event": "error", "data": {"ref": "x", "message": "uid required"}}


@pytest.mark.asyncio
async def test_get_messages_in_timestamp_order(client):
    await client.login("D1")
    event = await client.request("get", collection="messages", chat_id="C1", ref="m")
    assert [m["content"] for m in event["data"]["content"]] == ["Hello", "Thanks!"]


@pytest.mark.asyncio
async def test_get_chat_id_finds_existing_chat(client):
    await client.login("P1")
    event = await client.request("get", collection="chat_id", uid="D1", ref="c")
    assert event == {"event": "get-success", "data": {"ref": "c", "content": {"chat_id": "C1"}}}


@pytest.mark.asyncio
async def test_get_chat_id_creates_once(client, store):
    await client.login("D2")
    first = await client.request("get", collection="chat_id", uid="P1")
    second = await client.request("get", collection="chat_id", uid="P1")
    chat_id = first["data"]["content"]["chat_id"]
    assert second["data"]["content"]["chat_id"] == chat_id

    chat = await store.get(f"chats/{chat_id}")
    assert chat["doctor"] == "D2"
    assert chat["patient"] == "P1"
    assert chat["latest_message"] is None


# ═══════════════════════════════════════════════════════════
# post
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_post_text_message_updates_chat_summary(client, store):
    await client.login("P1")
    event = await client.request(
        "post", collection="message", chat_id="C1", type="text", content="I feel better", ref="p1"
    )
    assert event["event"] == "post-success"
    assert event["data"]["ref"] == "p1"
    message_id = event["data"]["content"]["id"]

    message = await store.get(f"chats/C1/messages/{message_id}")
    assert message["sender"] == "P1"
    assert message["type"] == "text"

    chat = await store.get("chats/C1")
    assert chat["latest_message"]["id"] == message_id
    assert chat["latest_message"]["summary"] == "I feel better"
    assert chat["patient_seen"] is True
    assert chat["doctor_seen"] is False


@pytest.mark.asyncio
async def test_post_image_message_summary(client, store):
    await client.login("D1")
    await client.request(
        "post", collection="message", chat_id="C1", type="image", content="https://cdn/x.png"
    )
    chat = await store.get("chats/C1")
    assert chat["latest_message"]["type"] == "image"
    assert chat["latest_message"]["summary"] == "Sent an image"
    assert chat["patient_seen"] is False


@pytest.mark.asyncio
async def test_post_message_validation(client):
    await client.login("P1")
    event = await client.request(
        "post", collection="message", chat_id="C1", type="system", content="fake", ref="v"
    )
    assert event["event"] == "error"
    assert event["data"]["ref"] == "v"

    event = await client.request("post", collection="message", chat_id="C1", content="", ref="w")
    assert event == {"event": "error", "data": {"ref": "w", "message": "content required"}}


@pytest.mark.asyncio
async def test_post_message_to_foreign_chat_is_forbidden(client, store):
    await client.login("P2")
    event = await client.request(
        "post", collection="message", chat_id="C1", content="hi", ref="f"
    )
    assert event == {"event": "error", "data": {"ref": "f", "message": "Not a chat participant"}}
    assert len(await store.get("chats/C1/messages")) == 2


@pytest.mark.asyncio
async def test_post_seen_marks_callers_flag(client, store):
    await store.update("chats/C1", {"doctor_seen": False, "patient_seen": False})
    await client.login("D1")
    event = await client.request("post", collection="seen", chat_id="C1", ref="s")
    assert event == {"event": "post-success", "data": {"ref": "s"}}

    chat = await store.get("chats/C1")
    assert chat["doctor_seen"] is True
    assert chat["patient_seen"] is False


@pytest.mark.asyncio
async def test_post_appointment_books_and_notifies_chat(client, store):
    await client.login("P2")
    event = await client.request(
        "post",
        collection="appointment",
        ref="book",
        data={"doctor": "D1", "patient": "someone-else", "time": "2026-11-02T10:00"},
    )
    assert event["event"] == "post-success"
    content = event["data"]["content"]

    appointment = await store.get(f"appointments/{content['id']}")
    assert appointment["doctor"] == "D1"
    assert appointment["patient"] == "P2"  # caller can only book for themselves

    messages = await store.get(f"chats/{content['chat_id']}/messages")
    assert len(messages) == 1
    assert messages[0]["type"] == "system"
    assert messages[0]["appointment_id"] == content["id"]
    assert "2026-11-02T10:00" in messages[0]["content"]

    chat = await store.get(f"chats/{content['chat_id']}")
    assert chat["latest_message"]["type"] == "system"
    assert chat["doctor_seen"] is False


@pytest.mark.asyncio
async def test_post_appointment_reuses_existing_chat(client, store):
    await client.login("D1")
    event = await client.request(
        "post", collection="appointment", data={"patient": "P1", "time": "tomorrow"}
    )
    assert event["data"]["content"]["chat_id"] == "C1"
    assert len(await store.get("chats/C1/messages")) == 3


@pytest.mark.asyncio
async def test_post_appointment_requires_other_party(client):
    await client.login("D1")
    event = await client.request("post", collection="appointment", data={"time": "x"}, ref="a")
    assert event == {"event": "error", "data": {"ref": "a", "message": "data.patient required"}}


@pytest.mark.asyncio
async def test_post_user_replaces_own_profile(client, store):
    await client.login("P1")
    event = await client.request(
        "post", collection="user", ref="u", data={"name": "Alex K.", "user_type": "patient"}
    )
    assert event == {"event": "post-success", "data": {"ref": "u"}}
    profile = {"name": "Alex K.", "user_type": "patient", "active": True}
    assert await store.get("users/P1") == profile
    assert client.session.user == profile


@pytest.mark.asyncio
async def test_post_user_cannot_change_presence(client, store):
    await client.login("P1")
    await client.request(
        "post", collection="user", data={"user_type": "patient", "active": False}
    )
    assert (await store.get("users/P1"))["active"] is True


@pytest.mark.asyncio
async def test_post_user_requires_object(client):
    await client.login("P1")
    event = await client.request("post", collection="user", data="nope", ref="u")
    assert event == {"event": "error", "data": {"ref": "u", "message": "data must be an object"}}
