import httpx
import pytest

from app.main import app


@pytest.fixture
async def client():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def register(client, username, password="password123"):
    res = await client.post(
        "/api/auth/register",
        json={"username": username, "email": f"{username}@example.com", "password": password},
    )
    assert res.status_code == 201, res.text
    body = res.json()
    return body["user"]["id"], {"Authorization": f"Bearer {body['token']}"}


async def test_root_and_health(client):
    assert (await client.get("/")).status_code == 200
    res = await client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"


async def test_register_login_me(client):
    user_id, headers = await register(client, "alice")

    dup = await client.post(
        "/api/auth/register",
        json={"username": "other", "email": "ALICE@example.com", "password": "password123"},
    )
    assert dup.status_code == 400
    assert "email" in dup.json()["detail"]

    bad = await client.post("/api/auth/login", json={"email": "alice@example.com", "password": "nope-nope"})
    assert bad.status_code == 401

    ok = await client.post("/api/auth/login", json={"email": "alice@example.com", "password": "password123"})
    assert ok.status_code == 200
    assert ok.json()["user"]["id"] == user_id

    me = await client.get("/api/auth/me", headers=headers)
    assert me.status_code == 200
    body = me.json()
    assert body["username"] == "alice"
    assert "isOnline" in body and "createdAt" in body
    assert "password" not in body

    refreshed = await client.post("/api/auth/refresh", headers=headers)
    assert refreshed.status_code == 200
    assert refreshed.json()["token"]


async def test_auth_required(client):
    res = await client.get("/api/chat")
    assert res.status_code == 401
    assert res.json()["detail"] == "Access denied. No token provided."

    res = await client.get("/api/chat", headers={"Authorization": "Bearer not-a-token"})
    assert res.status_code == 401


async def test_request_validation_returns_400(client):
    _, headers = await register(client, "alice")

    res = await client.post(
        "/api/chat", content=b"{not json", headers={**headers, "Content-Type": "application/json"}
    )
    assert res.status_code == 400
    assert res.json()["error"] == "Invalid JSON format"

    res = await client.post("/api/auth/register", json={"username": "x"})
    assert res.status_code == 400
    assert res.json()["error"] == "Validation failed"


async def test_chat_flow(client):
    alice_id, alice = await register(client, "alice")
    bob_id, bob = await register(client, "bob")
    _, carol = await register(client, "carol")

    res = await client.post("/api/chat", json={"participantIds": [bob_id]}, headers=alice)
    assert res.status_code == 200
    chat = res.json()["chat"]
    assert res.json()["isExisting"] is False
    assert chat["name"] == "bob"
    assert chat["isGroup"] is False

    res = await client.post("/api/chat", json={"participantIds": [alice_id]}, headers=bob)
    assert res.json()["isExisting"] is True
    assert res.json()["chat"]["id"] == chat["id"]

    res = await client.post(f"/api/chat/{chat['id']}/messages", json={"content": "hi bob"}, headers=alice)
    assert res.status_code == 201
    message = res.json()["message"]
    assert message["content"] == "hi bob"
    assert message["sender"]["id"] == alice_id

    res = await client.post(f"/api/chat/{chat['id']}/messages", json={"content": "intruder"}, headers=carol)
    assert res.status_code == 403
    assert res.json()["detail"] == "Access denied to this chat"

    res = await client.get(f"/api/chat/{chat['id']}/messages", params={"page": 1, "limit": 10}, headers=bob)
    assert res.status_code == 200
    page = res.json()
    assert [m["content"] for m in page["messages"]] == ["hi bob"]
    assert page["pagination"] == {"page": 1, "limit": 10, "total": 1, "pages": 1, "hasMore": False}

    res = await client.get(f"/api/chat/{chat['id']}/messages", params={"limit": 500}, headers=bob)
    assert res.status_code == 400

    res = await client.put(f"/api/chat/{chat['id']}/read", headers=bob)
    assert res.json() == {"markedCount": 1}
    res = await client.put(f"/api/chat/{chat['id']}/read", headers=bob)
    assert res.json() == {"markedCount": 0}

    res = await client.put(f"/api/chat/messages/{message['id']}", json={"content": "hi bob!"}, headers=alice)
    assert res.status_code == 200
    assert res.json()["message"]["content"] == "hi bob!"
    assert res.json()["message"]["editedAt"] is not None

    res = await client.post(f"/api/chat/messages/{message['id']}/reactions", json={"emoji": "🎉"}, headers=bob)
    assert res.status_code == 200
    assert res.json()["added"] is True

    res = await client.get("/api/chat", headers=bob)
    chats = res.json()
    assert chats["count"] == 1
    assert chats["chats"][0]["name"] == "alice"
    assert chats["chats"][0]["lastMessage"]["content"] == "hi bob!"

    res = await client.get("/api/search/messages", params={"query": "BOB!"}, headers=bob)
    assert res.status_code == 200
    assert res.json()["count"] == 1

    res = await client.delete(f"/api/chat/messages/{message['id']}", headers=bob)
    assert res.status_code == 403
    res = await client.delete(f"/api/chat/messages/{message['id']}", headers=alice)
    assert res.status_code == 200

    res = await client.get("/api/chat", headers=bob)
    assert res.json()["chats"][0]["lastMessage"] is None

    res = await client.get("/api/chat/status")
    assert res.status_code == 200


async def test_group_flow(client):
    alice_id, alice = await register(client, "alice")
    bob_id, bob = await register(client, "bob")
    carol_id, _ = await register(client, "carol")
    dave_id, _ = await register(client, "dave")

    res = await client.post(
        "/api/chat", json={"participantIds": [bob_id, carol_id], "isGroup": True, "name": "Team"}, headers=alice
    )
    group = res.json()["chat"]
    assert group["admin"]["id"] == alice_id

    res = await client.post(f"/api/groups/{group['id']}/members", json={"userIds": [dave_id]}, headers=bob)
    assert res.status_code == 403
    res = await client.post(f"/api/groups/{group['id']}/members", json={"userIds": []}, headers=alice)
    assert res.status_code == 400
    res = await client.post(f"/api/groups/{group['id']}/members", json={"userIds": [dave_id]}, headers=alice)
    assert res.status_code == 200
    assert [u["id"] for u in res.json()["addedMembers"]] == [dave_id]

    res = await client.delete(f"/api/groups/{group['id']}/members/{carol_id}", headers=alice)
    assert res.status_code == 200
    assert res.json()["removedUser"]["id"] == carol_id

    res = await client.put(f"/api/groups/{group['id']}/info", json={"name": "Crew"}, headers=alice)
    assert res.status_code == 200
    assert res.json()["chat"]["name"] == "Crew"

    res = await client.post(f"/api/groups/{group['id']}/leave", headers=alice)
    assert res.json() == {"groupDeleted": False, "newAdminId": bob_id}

    res = await client.get(f"/api/chat/{group['id']}/messages", headers=bob)
    contents = [m["content"] for m in res.json()["messages"]]
    assert contents == [
        "alice added dave to the group",
        "alice removed carol from the group",
        'alice changed group name to "Crew"',
        "alice left the group. bob is now the admin.",
    ]


async def test_search_endpoints_and_user_directory(client):
    alice_id, alice = await register(client, "alice")
    bob_id, bob = await register(client, "bob")
    carol_id, _ = await register(client, "carol")

    res = await client.post("/api/chat", json={"participantIds": [bob_id]}, headers=alice)
    chat_id = res.json()["chat"]["id"]
    res = await client.post(
        "/api/chat", json={"participantIds": [bob_id, carol_id], "isGroup": True, "name": "Book club"}, headers=alice
    )
    assert res.status_code == 200
    res = await client.post(f"/api/chat/{chat_id}/messages", json={"content": "bonjour bob"}, headers=alice)
    assert res.status_code == 201

    res = await client.get("/api/search/chats", params={"query": "bo"}, headers=alice)
    assert res.status_code == 200
    body = res.json()
    assert [c["name"] for c in body["chats"]] == ["bob", "Book club"]
    assert body["count"] == 2
    res = await client.get("/api/search/chats", params={"query": "b"}, headers=alice)
    assert res.status_code == 400

    res = await client.get("/api/search/global", params={"query": "bo"}, headers=alice)
    assert res.status_code == 200
    body = res.json()
    assert [u["username"] for u in body["users"]] == ["bob"]
    assert [m["content"] for m in body["messages"]] == ["bonjour bob"]
    assert body["counts"] == {"users": 1, "chats": 2, "messages": 1, "total": 4}

    res = await client.get("/api/users/all", headers=alice)
    assert res.status_code == 200
    assert [u["username"] for u in res.json()["users"]] == ["bob", "carol"]

    res = await client.get(
        "/api/search/messages",
        params={"query": "bonjour", "dateFrom": "2000-01-01T00:00:00Z", "dateTo": "2999-01-01T00:00:00+02:00"},
        headers=bob,
    )
    assert res.status_code == 200
    assert res.json()["count"] == 1


async def test_clients_cannot_post_system_messages(client):
    _, alice = await register(client, "alice")
    bob_id, bob = await register(client, "bob")
    res = await client.post("/api/chat", json={"participantIds": [bob_id]}, headers=alice)
    chat_id = res.json()["chat"]["id"]

    res = await client.post(
        f"/api/chat/{chat_id}/messages",
        json={"content": "Bob left the group", "messageType": "system"},
        headers=bob,
    )
    assert res.status_code == 400

    res = await client.get(f"/api/chat/{chat_id}/messages", headers=alice)
    assert res.json()["messages"] == []


async def test_friends_and_users(client):
    alice_id, alice = await register(client, "alice")
    bob_id, bob = await register(client, "bob")

    res = await client.get("/api/users/search", params={"query": "bo"}, headers=alice)
    assert [u["username"] for u in res.json()["users"]] == ["bob"]
    res = await client.get("/api/users/search", params={"query": "b"}, headers=alice)
    assert res.status_code == 400

    res = await client.post(f"/api/friends/{bob_id}/request", headers=alice)
    assert res.status_code == 201
    res = await client.post(f"/api/friends/{alice_id}/request", headers=bob)
    assert res.status_code == 400

    res = await client.get("/api/friends/requests", headers=bob)
    requests = res.json()["requests"]
    assert requests[0]["from"]["username"] == "alice"

    res = await client.post(f"/api/friends/requests/{requests[0]['id']}/accept", headers=bob)
    assert res.status_code == 200

    res = await client.get("/api/friends", headers=alice)
    assert res.json()["count"] == 1
    assert res.json()["friends"][0]["id"] == bob_id

    res = await client.get(f"/api/users/{bob_id}", headers=alice)
    assert res.json()["isFriend"] is True
    assert res.json()["status"] == "offline"

    res = await client.put("/api/users/settings", json={"settings": {"theme": "dark"}}, headers=alice)
    res = await client.put("/api/users/settings", json={"settings": {"sound": False}}, headers=alice)
    assert res.json()["settings"] == {"theme": "dark", "sound": False}

    res = await client.put("/api/users/profile", json={"username": "bob"}, headers=alice)
    assert res.status_code == 400
    res = await client.put("/api/users/profile", json={"avatar": "a.png"}, headers=alice)
    assert res.json()["avatar"] == "a.png"

    res = await client.delete(f"/api/friends/{bob_id}", headers=alice)
    assert res.status_code == 200
    res = await client.delete(f"/api/friends/{bob_id}", headers=alice)
    assert res.status_code == 404

    res = await client.post("/api/auth/logout", headers=alice)
    assert res.status_code == 200
