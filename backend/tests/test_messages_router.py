from bson import ObjectId


async def test_requests_without_token_are_rejected(client_for, users):
    client = client_for("a1")
    client.headers.pop("Authorization")
    response = await client.get("/api/messages/users")
    assert response.status_code == 401


async def test_send_and_fetch_through_api(client_for, users):
    alice, bob = client_for("a1"), client_for("b1")
    response = await alice.post("/api/messages/send/b1", json={"text": "hi", "messageType": "text"})
    body = response.json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["newMessage"]["senderId"] == "a1"
    assert body["newMessage"]["delivered"] is True

    sidebar = (await bob.get("/api/messages/users")).json()
    assert sidebar["success"] is True
    assert sidebar["unseenCounts"]["a1"] == 1
    assert sidebar["lastMessagePreviews"]["a1"] == "hi"
    assert {p["_id"] for p in sidebar["peers"]} == {"a1", "c1"}

    thread = (await bob.get("/api/messages/a1")).json()
    assert [m["text"] for m in thread["messages"]] == ["hi"]
    assert (await bob.get("/api/messages/conversations")).json()["unseenCounts"]["a1"] == 0


async def test_failures_use_the_envelope(client_for, users):
    alice = client_for("a1")
    response = await alice.post("/api/messages/send/b1", json={"messageType": "text"})
    assert response.status_code == 200
    assert response.json() == {"success": False, "message": "Message must contain text, image or audio"}

    missing = await alice.put(f"/api/messages/react/{ObjectId()}", json={"emoji": "👍"})
    assert missing.json() == {"success": False, "message": "Message not found"}


async def test_edit_react_and_delete_through_api(client_for, users):
    alice, bob = client_for("a1"), client_for("b1")
    sent = (await alice.post("/api/messages/send/b1", json={"text": "hi"})).json()["newMessage"]

    reacted = (await bob.put(f"/api/messages/react/{sent['_id']}", json={"emoji": "🔥"})).json()
    assert reacted == {"success": True, "reactions": [{"userId": "b1", "emoji": "🔥"}]}

    denied = (await bob.put(f"/api/messages/edit/{sent['_id']}", json={"text": "mine now"})).json()
    assert denied == {"success": False, "message": "Unauthorized"}
    edited = (await alice.put(f"/api/messages/edit/{sent['_id']}", json={"text": "hello"})).json()
    assert edited["success"] is True
    assert edited["message"]["edited"] is True

    hidden = await bob.request("DELETE", f"/api/messages/delete/{sent['_id']}", json={"deleteFor": "me"})
    assert hidden.json() == {"success": True}
    refused = await bob.request("DELETE", f"/api/messages/delete/{sent['_id']}", json={"deleteFor": "everyone"})
    assert refused.json()["success"] is False

    gone = await alice.request("DELETE", f"/api/messages/delete/{sent['_id']}", json={"deleteFor": "everyone"})
    assert gone.json() == {"success": True}
    assert (await alice.get("/api/messages/b1")).json()["messages"] == []


async def test_mark_seen_through_api(client_for, users):
    alice, bob = client_for("a1"), client_for("b1")
    sent = (await alice.post("/api/messages/send/b1", json={"text": "hi"})).json()["newMessage"]
    assert (await bob.put(f"/api/messages/mark/{sent['_id']}")).json() == {"success": True}
    assert (await alice.put(f"/api/messages/mark/{sent['_id']}")).json()["success"] is False


async def test_presence_endpoint(client_for, users, connect):
    await connect("b1")
    client = client_for("a1")
    online = (await client.get("/api/presence/b1")).json()
    assert online["success"] is True
    assert online["online"] is True
    offline = (await client.get("/api/presence/c1")).json()
    assert offline["online"] is False
    assert offline["lastSeen"] is None
    assert (await client.get("/api/presence/ghost")).json()["success"] is False


async def test_status_endpoint(client_for):
    response = await client_for("a1").get("/api/status")
    assert response.json() == {"message": "Server is live"}


async def test_malformed_bodies_use_the_envelope(client_for, users):
    alice = client_for("a1")
    message_id = ObjectId()

    react = await alice.put(f"/api/messages/react/{message_id}", json={})
    assert react.status_code == 200
    assert react.json() == {"success": False, "message": "Invalid emoji: Field required"}

    edit = await alice.put(f"/api/messages/edit/{message_id}", json={})
    assert edit.status_code == 200
    assert edit.json() == {"success": False, "message": "Invalid text: Field required"}

    send = await alice.post("/api/messages/send/b1", json={"text": "hi", "duration": "long"})
    assert send.status_code == 200
    assert send.json()["success"] is False
    assert send.json()["message"].startswith("Invalid duration")
    assert (await alice.get("/api/messages/b1")).json()["messages"] == []
