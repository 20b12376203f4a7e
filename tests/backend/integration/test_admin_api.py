import pytest


pytestmark = pytest.mark.asyncio


async def test_admin_auth(client):
    missing = await client.get("/api/v1/admin/systems")
    assert missing.status_code == 401
    wrong = await client.get("/api/v1/admin/systems", headers={"Authorization": "Bearer nope"})
    assert wrong.status_code == 403
    assert wrong.json()["error"]["code"] == "FORBIDDEN_ADMIN_ONLY"


async def test_user_key_token_is_not_admin(client, register):
    alice = await register("alice")
    resp = await client.post("/api/v1/admin/users/alice/mint", json={"amount": 5}, headers=alice["headers"])
    assert resp.status_code == 403


async def test_admin_user_management(client, register, admin_headers):
    await register("alice")
    await register("bob")

    minted = await client.post("/api/v1/admin/users/alice/mint", json={"amount": 10}, headers=admin_headers)
    assert minted.json()["data"]["balance"] == 10.0

    moved = await client.post(
        "/api/v1/admin/transfer", json={"from": "alice", "to": "bob", "amount": 4}, headers=admin_headers,
    )
    assert moved.json()["data"] == {"from": "alice", "to": "bob", "amount": 4.0}

    set_sys = await client.patch(
        "/api/v1/admin/users/bob", json={"key": "sys.verified", "value": True}, headers=admin_headers,
    )
    assert set_sys.json()["data"]["value"] is True
    dropped = await client.delete("/api/v1/admin/users/bob/keys/sys.verified", headers=admin_headers)
    assert dropped.status_code == 200

    removed = await client.delete("/api/v1/admin/users/bob", headers=admin_headers)
    assert removed.json()["data"] == {"username": "bob"}
    assert (await client.get("/api/v1/users/bob")).status_code == 404


async def test_standing_and_banned_access(client, register, admin_headers):
    alice = await register("alice")

    warned = await client.post(
        "/api/v1/admin/standing", json={"username": "alice", "level": "warning", "reason": "spam"}, headers=admin_headers,
    )
    assert warned.json()["data"] == {"username": "alice", "standing": "warning"}
    post = await client.post("/api/v1/posts", json={"content": "hi"}, headers=alice["headers"])
    assert post.status_code == 403

    await client.post(
        "/api/v1/admin/standing", json={"username": "alice", "level": "banned", "reason": "abuse"}, headers=admin_headers,
    )
    banned = await client.get("/api/v1/auth/me", headers=alice["headers"])
    assert banned.status_code == 403
    assert banned.json()["error"]["code"] == "ACCOUNT_BANNED"

    recovered = await client.post(
        "/api/v1/admin/standing/recover", json={"username": "alice", "reason": "appeal"}, headers=admin_headers,
    )
    assert recovered.json()["data"]["new_standing"] == "warning"
    assert (await client.get("/api/v1/auth/me", headers=alice["headers"])).status_code == 200

    history = (await client.get("/api/v1/admin/standing/alice", headers=admin_headers)).json()["data"]
    assert [h["level"] for h in history["history"]] == ["warning", "banned", "warning"]

    due = await client.post("/api/v1/admin/standing/recover-due", headers=admin_headers)
    assert due.json()["data"] == {"recovered": 0}


async def test_soft_ban_strips_account(client, register, admin_headers):
    alice = await register("alice")
    await client.post("/api/v1/admin/users/alice/ban", headers=admin_headers)
    # The key went with the rest of the document
    assert (await client.get("/api/v1/auth/me", headers=alice["headers"])).status_code == 401


async def test_systems_and_moderation(client, register, admin_headers):
    alice = await register("alice")
    await register("bob")

    put = await client.put("/api/v1/admin/systems/originOS", json={"info": {"owner": "mist"}}, headers=admin_headers)
    assert put.json()["data"] == {"owner": "mist"}
    listed = (await client.get("/api/v1/admin/systems", headers=admin_headers)).json()["data"]
    assert listed == {"originOS": {"owner": "mist"}}

    post = await client.post("/api/v1/posts", json={"content": "from origin", "os": "originOS"}, headers=alice["headers"])
    post_id = post.json()["data"]["id"]
    removed = await client.delete(f"/api/v1/admin/posts/{post_id}", headers=admin_headers)
    assert removed.json()["data"] == {"id": post_id}

    await client.post("/api/v1/items", json={"name": "Lamp"}, headers=alice["headers"])
    moved = await client.patch("/api/v1/admin/items/Lamp/owner", json={"username": "bob"}, headers=admin_headers)
    assert moved.json()["data"]["owner"] == "bob"

    key = (await client.post("/api/v1/keys", json={"name": "Gift"}, headers=alice["headers"])).json()["data"]
    granted = await client.post(f"/api/v1/admin/keys/{key['key']}/holders", json={"username": "bob"}, headers=admin_headers)
    assert granted.json()["data"]["price"] == 0
    revoked = await client.delete(f"/api/v1/admin/keys/{key['key']}/holders/bob", headers=admin_headers)
    assert revoked.status_code == 200

    gone = await client.delete("/api/v1/admin/systems/originOS", headers=admin_headers)
    assert gone.status_code == 200
    assert (await client.delete("/api/v1/admin/systems/originOS", headers=admin_headers)).status_code == 404
