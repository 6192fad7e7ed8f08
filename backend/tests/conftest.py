"""
Test fixtures for the ledger API.

API tests run the FastAPI app in-process through ``httpx.ASGITransport``
against a throwaway SQLite database per test (``aiosqlite``).  Service-level
tests use the in-memory stores in ``fakes.py`` instead.
"""
import os

# Must be set before ledger.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("DB_CREATE_ALL", "false")

import dataclasses
import uuid

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

import ledger.models  # noqa: F401  (register tables)
from ledger.database import Base, get_db
from ledger.main import app
from ledger.middleware.auth import create_access_token
from ledger.models.user import User

from fakes import build_world


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def auth_headers(token: str) -> dict:
    """Return auth header dict for a given token."""
    return {"Authorization": f"Bearer {token}"}


@dataclasses.dataclass
class OrgMember:
    user_id: uuid.UUID
    org_id: uuid.UUID
    role_id: uuid.UUID
    membership_id: uuid.UUID
    headers: dict


async def create_user(session_factory, email: str) -> uuid.UUID:
    async with session_factory() as session:
        user = User(id=uuid.uuid4(), email=email, display_name=email.split("@")[0])
        session.add(user)
        await session.commit()
        return user.id


async def bootstrap_org(client: httpx.AsyncClient, user_id: uuid.UUID, name: str = "Acme Trading") -> OrgMember:
    """Create an organization as *user_id* and return an owner-scoped token."""
    r = await client.post(
        "/api/orgs",
        headers=auth_headers(create_access_token(user_id)),
        json={"name": name, "base_currency": "USD"},
    )
    assert r.status_code == 201, r.text
    body = r.json()
    org_id = uuid.UUID(body["organization"]["id"])
    role_id = uuid.UUID(body["membership"]["role_id"])
    membership_id = uuid.UUID(body["membership"]["id"])
    token = create_access_token(user_id, org_id, role_id, membership_id)
    return OrgMember(user_id, org_id, role_id, membership_id, auth_headers(token))


# ---------------------------------------------------------------------------
# Database + app fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh SQLite database with the full schema."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def client(session_factory):
    """Async HTTP client bound to the app, with ``get_db`` pointed at the test DB."""

    async def _override_get_db():
        async with session_factory() as session:
            try:
                yield session
            finally:
                await session.close()

    app.dependency_overrides[get_db] = _override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def owner(client, session_factory) -> OrgMember:
    """Owner of a freshly bootstrapped organization."""
    user_id = await create_user(session_factory, "owner@acme.test")
    return await bootstrap_org(client, user_id)


@pytest_asyncio.fixture
async def accounts(client, owner) -> dict:
    """Seeded chart of accounts keyed by code."""
    r = await client.get("/api/accounts", headers=owner.headers)
    assert r.status_code == 200, r.text
    return {a["code"]: a for a in r.json()}


# ---------------------------------------------------------------------------
# Service-level fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def world():
    """Ledger core over in-memory stores."""
    return build_world()
