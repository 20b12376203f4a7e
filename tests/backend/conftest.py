import hashlib
import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from rotur.config import Settings
from rotur.core.store import Store
from rotur.main import create_app
from rotur.services import accounts


ADMIN_TOKEN = "test-admin-token"


def client_hash(password: str) -> str:
    """Clients send md5(password), never the password itself."""
    return hashlib.md5(password.encode("utf-8")).hexdigest()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """
    Settings with every collection file and the OFSF root under tmp_path.
    Background tasks and outbound notifications are off.
    """
    return Settings(
        users_file_path=str(tmp_path / "users.json"),
        posts_file_path=str(tmp_path / "posts.json"),
        followers_file_path=str(tmp_path / "clawusers.json"),
        items_file_path=str(tmp_path / "items.json"),
        keys_file_path=str(tmp_path / "keys.json"),
        systems_file_path=str(tmp_path / "systems.json"),
        events_history_path=str(tmp_path / "events_history.json"),
        groups_file_path=str(tmp_path / "groups.json"),
        daily_claims_file_path=str(tmp_path / "rotur_daily.json"),
        statuses_file_path=str(tmp_path / "statuses.json"),
        ofsf_root=str(tmp_path / "files"),
        admin_token=ADMIN_TOKEN,
        event_server_url="",
        websocket_server_url="",
        premium_post_key="",
        run_background_tasks=False,
    )


@pytest.fixture
def store(test_settings) -> Store:
    """A fresh, empty store whose snapshots are only written on `store.flush()`."""
    s = Store(test_settings)
    s.load_all()
    return s


@pytest.fixture
def make_user(store):
    """
    Factory fixture registering users straight through the accounts service.
    Returns the lowercased username; `credits` are minted from the fountain.
    """

    def _make_user(username: str | None = None, credits: float = 0, password: str = "Passw0rd!") -> str:
        username = username or f"user_{uuid.uuid4().hex[:6]}"
        accounts.register(store, username, client_hash(password), email=f"{username}@example.com")
        if credits:
            accounts.mint(store, username, credits)
        return username.lower()

    return _make_user


@pytest.fixture
def app(test_settings):
    return create_app(test_settings)


@pytest_asyncio.fixture
async def client(app):
    """
    Provide an HTTPX AsyncClient bound to the app.
    httpx does not run lifespan events, so the store starts empty and snapshots stay queued.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as async_client:
        yield async_client


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


@pytest_asyncio.fixture
async def register(client):
    """
    Factory fixture registering a user over HTTP.
    Returns {"username", "key", "headers"} where headers authenticate as that user.
    """

    async def _register(username: str | None = None, password: str = "Passw0rd!") -> dict:
        username = username or f"user_{uuid.uuid4().hex[:6]}"
        resp = await client.post(
            "/api/v1/auth/register",
            json={"username": username, "password": client_hash(password), "email": f"{username}@example.com"},
        )
        assert resp.status_code == 200, resp.text
        key = resp.json()["data"]["key"]
        return {"username": username.lower(), "key": key, "headers": {"Authorization": f"Bearer {key}"}}

    return _register
