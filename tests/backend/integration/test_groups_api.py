import pytest


pytestmark = pytest.mark.asyncio


async def test_group_lifecycle(client, register, admin_headers):
    alice = await register("alice")
    bob = await register("bob")

    created = await client.post(
        "/api/v1/groups", json={"tag": "devs", "name": "Developers", "public": True}, headers=alice["headers"],
    )
    assert created.json()["data"]["member_count"] == 1
    taken = await client.post("/api/v1/groups", json={"tag": "DEVS", "name": "Again"}, headers=bob["headers"])
    assert taken.status_code == 409

    joined = await client.post("/api/v1/groups/devs/join", headers=bob["headers"])
    assert joined.json()["data"]["member_count"] == 2
    mine = (await client.get("/api/v1/groups/mine", headers=bob["headers"])).json()["data"]
    assert [g["tag"] for g in mine] == ["devs"]

    found = (await client.get("/api/v1/groups/search", params={"q": "develop"})).json()["data"]
    assert [g["tag"] for g in found] == ["devs"]

    denied = await client.post("/api/v1/groups/devs/announcements", json={"title": "Hi"}, headers=bob["headers"])
    assert denied.status_code == 403
    posted = await client.post("/api/v1/groups/devs/announcements", json={"title": "Welcome"}, headers=alice["headers"])
    assert posted.status_code == 200
    listed = (await client.get("/api/v1/groups/devs/announcements")).json()["data"]
    assert [a["title"] for a in listed] == ["Welcome"]

    await client.post("/api/v1/admin/users/bob/mint", json={"amount": 5}, headers=admin_headers)
    tip = await client.post("/api/v1/groups/devs/tips", json={"amount": 2}, headers=bob["headers"])
    assert tip.json()["data"]["amount_credits"] == 2.0
    assert (await client.get("/api/v1/groups/devs")).json()["data"]["credits_balance"] == 2.0


async def test_roles_and_kick(client, register):
    alice = await register("alice")
    bob = await register("bob")
    carol = await register("carol")
    await client.post("/api/v1/groups", json={"tag": "devs", "name": "Developers", "public": True}, headers=alice["headers"])
    await client.post("/api/v1/groups/devs/join", headers=bob["headers"])
    await client.post("/api/v1/groups/devs/join", headers=carol["headers"])

    refused = await client.delete("/api/v1/groups/devs/members/carol", headers=bob["headers"])
    assert refused.status_code == 403

    role = await client.post(
        "/api/v1/groups/devs/roles",
        json={"name": "Mods", "permissions": ["groups.members.remove"]},
        headers=alice["headers"],
    )
    role_id = role.json()["data"]["id"]
    assigned = await client.post(f"/api/v1/groups/devs/members/bob/roles/{role_id}", headers=alice["headers"])
    assert assigned.json()["data"] == {"username": "bob", "role_id": role_id}

    perms = (await client.get("/api/v1/groups/devs/permissions", headers=bob["headers"])).json()["data"]
    assert perms == ["groups.members.remove"]

    kicked = await client.delete("/api/v1/groups/devs/members/carol", headers=bob["headers"])
    assert kicked.json()["data"]["member_count"] == 2

    deleted = await client.delete("/api/v1/groups/devs", headers=alice["headers"])
    assert deleted.status_code == 200
    assert (await client.get("/api/v1/groups/devs")).status_code == 404
