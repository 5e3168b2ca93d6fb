import pytest

from app.client.session_controller import ChatSession, SessionRequestError


@pytest.fixture
async def sessions(client_for, users):
    alice = ChatSession(client_for("a1"), "a1")
    bob = ChatSession(client_for("b1"), "b1")
    return alice, bob


async def _pump(socket, session):
    """Feed every frame the gateway wrote to `socket` into `session`."""
    frames, socket.frames = socket.frames, []
    for frame in frames:
        await session.handle_event(frame["event"], frame["data"])


async def test_incoming_message_for_active_chat_is_appended_and_marked_seen(sessions, connect, db):
    alice, bob = sessions
    sock_a, _ = await connect("a1")
    sock_b, _ = await connect("b1")
    await alice.select_peer("b1")
    await bob.select_peer("a1")

    sent = await alice.send(text="hi")
    assert [m["_id"] for m in alice.messages] == [sent["_id"]]

    await _pump(sock_b, bob)
    assert [m["text"] for m in bob.messages] == ["hi"]
    assert bob.unseen.get("a1") is None

    await _pump(sock_a, alice)
    assert alice.messages[0]["seen"] is True
    assert bob.online_users == ["a1", "b1"]


async def test_incoming_message_for_other_chat_bumps_unseen(sessions, connect):
    alice, bob = sessions
    sock_b, _ = await connect("b1")
    await alice.select_peer("b1")
    await bob.select_peer("c1")

    await alice.send(text="one")
    await alice.send(text="two")
    await _pump(sock_b, bob)
    assert bob.messages == []
    assert bob.unseen["a1"] == 2
    assert bob.last_messages["a1"] == "two"


async def test_duplicate_new_message_is_ignored(sessions, connect):
    alice, bob = sessions
    sock_b, _ = await connect("b1")
    await alice.select_peer("b1")
    await bob.select_peer("a1")
    await alice.send(text="hi")
    frame = sock_b.events("newMessage")[0]
    await _pump(sock_b, bob)
    await bob.handle_event("newMessage", frame["data"])
    assert len(bob.messages) == 1


async def test_failed_send_appends_nothing(sessions):
    alice, _ = sessions
    await alice.select_peer("b1")
    with pytest.raises(SessionRequestError):
        await alice.send(text="   ")
    assert alice.messages == []


async def test_edits_reactions_and_deletes_are_reconciled(sessions, connect):
    alice, bob = sessions
    sock_b, _ = await connect("b1")
    await alice.select_peer("b1")
    await bob.select_peer("a1")
    first = await alice.send(text="hi")
    second = await alice.send(text="there")
    await _pump(sock_b, bob)

    await alice.edit(first["_id"], "hello")
    await alice.react(second["_id"], "👍")
    await _pump(sock_b, bob)
    by_id = {m["_id"]: m for m in bob.messages}
    assert by_id[first["_id"]]["text"] == "hello"
    assert by_id[first["_id"]]["edited"] is True
    assert by_id[second["_id"]]["reactions"] == [{"userId": "a1", "emoji": "👍"}]
    assert alice.messages[0]["text"] == "hello"

    await alice.delete(second["_id"], "everyone")
    await _pump(sock_b, bob)
    assert [m["_id"] for m in bob.messages] == [first["_id"]]
    assert [m["_id"] for m in alice.messages] == [first["_id"]]


async def test_events_for_unloaded_messages_are_noops(sessions):
    _, bob = sessions
    await bob.handle_event("messageReaction", {"messageId": "missing", "reactions": []})
    await bob.handle_event("messageEdited", {"_id": "missing", "text": "x"})
    await bob.handle_event("messageDeleted", {"messageId": "missing"})
    await bob.handle_event("messagesSeen", {"messageId": "missing"})
    assert bob.messages == []


async def test_delete_for_me_only_filters_locally(sessions):
    alice, bob = sessions
    await alice.select_peer("b1")
    sent = await alice.send(text="hi")
    await bob.select_peer("a1")
    await bob.delete(sent["_id"], "me")
    assert bob.messages == []
    await bob.select_peer("a1")
    assert [m["_id"] for m in bob.messages] == [sent["_id"]]


async def test_presence_signals(sessions):
    _, bob = sessions
    await bob.handle_event("getOnlineUsers", ["a1", "b1"])
    await bob.handle_event("userTyping", {"userId": "a1", "conversationKey": "a1-b1", "isTyping": True})
    await bob.handle_event("recording", {"userId": "a1", "isRecording": True})
    assert bob.is_online("a1")
    assert bob.typing_users == {"a1": True}
    assert bob.recording_users == {"a1": True}


async def test_load_conversations(sessions):
    alice, bob = sessions
    await alice.select_peer("b1")
    await alice.send(text="hi")
    await bob.load_conversations()
    assert bob.unseen["a1"] == 1
    assert bob.last_messages["a1"] == "hi"
    await bob.select_peer("a1")
    assert "a1" not in bob.unseen


async def test_failed_select_keeps_previous_conversation(sessions):
    alice, _ = sessions
    await alice.select_peer("b1")
    sent = await alice.send(text="hi")

    alice._http.headers.pop("Authorization")
    with pytest.raises(SessionRequestError):
        await alice.select_peer("c1")
    assert alice.selected_peer == "b1"
    assert [m["_id"] for m in alice.messages] == [sent["_id"]]
