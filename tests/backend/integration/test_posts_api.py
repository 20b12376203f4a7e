import pytest


pytestmark = pytest.mark.asyncio


async def test_post_reply_rate_flow(client, register):
    alice = await register("alice")
    bob = await register("bob")

    created = await client.post("/api/v1/posts", json={"content": "hello rotur"}, headers=alice["headers"])
    assert created.status_code == 200
    post = created.json()["data"]
    assert post["user"] == "alice"

    reply = await client.post(f"/api/v1/posts/{post['id']}/reply", json={"content": "hi"}, headers=bob["headers"])
    assert reply.json()["data"]["user"] == "bob"

    rated = await client.post(f"/api/v1/posts/{post['id']}/rate", json={"rating": 1}, headers=bob["headers"])
    assert rated.json()["data"] == {"likes": ["bob"], "count": 1}

    fetched = (await client.get(f"/api/v1/posts/{post['id']}")).json()["data"]
    assert len(fetched["replies"]) == 1
    assert fetched["likes"] == ["bob"]

    feed = (await client.get("/api/v1/posts/feed")).json()["data"]
    assert [p["id"] for p in feed] == [post["id"]]
    found = (await client.get("/api/v1/posts/search", params={"q": "ROTUR"})).json()["data"]
    assert len(found) == 1


async def test_repost_rules(client, register):
    alice = await register("alice")
    bob = await register("bob")
    carol = await register("carol")

    original = (await client.post("/api/v1/posts", json={"content": "p1"}, headers=alice["headers"])).json()["data"]
    repost = await client.post(f"/api/v1/posts/{original['id']}/repost", headers=bob["headers"])
    assert repost.status_code == 200
    repost_id = repost.json()["data"]["id"]

    again = await client.post(f"/api/v1/posts/{repost_id}/repost", headers=carol["headers"])
    assert again.status_code == 400
    assert again.json()["error"] == {"code": "PRECONDITION_FAILED", "message": "Cannot repost a repost"}

    # Reposts live on the profile only
    feed = (await client.get("/api/v1/posts/feed")).json()["data"]
    assert [p["id"] for p in feed] == [original["id"]]
    profile = (await client.get("/api/v1/posts/user/bob")).json()["data"]
    assert [p["id"] for p in profile] == [repost_id]


async def test_post_validation_and_ownership(client, register):
    alice = await register("alice")
    bob = await register("bob")

    too_long = await client.post("/api/v1/posts", json={"content": "x" * 301}, headers=alice["headers"])
    assert too_long.status_code == 400
    anonymous = await client.post("/api/v1/posts", json={"content": "hi"})
    assert anonymous.status_code == 401

    post = (await client.post("/api/v1/posts", json={"content": "mine"}, headers=alice["headers"])).json()["data"]
    denied = await client.delete(f"/api/v1/posts/{post['id']}", headers=bob["headers"])
    assert denied.status_code == 403
    pinned = await client.post(f"/api/v1/posts/{post['id']}/pin", headers=alice["headers"])
    assert pinned.json()["data"] == {"id": post["id"], "pinned": True}
    deleted = await client.delete(f"/api/v1/posts/{post['id']}", headers=alice["headers"])
    assert deleted.status_code == 200
    assert (await client.get(f"/api/v1/posts/{post['id']}")).status_code == 404
