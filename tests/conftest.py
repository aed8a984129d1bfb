from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.core.database.engine import build_engine, build_sessionmaker, get_db, init_db
from app.core.rate_limit import limiter
from app.features.permissions.models import Group
from app.features.permissions.seed import seed_defaults
from app.features.permissions.store import MEMBERSHIP, EntityStore
from app.features.users.auth import create_access_token, hash_password
from app.features.users.models import User
from app.main import app


PASSWORD = "secret123"


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'access.db'}")
    await init_db(bind=test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_sessionmaker(engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory() as db:
        yield db


@pytest.fixture
def store(session: AsyncSession) -> EntityStore:
    return EntityStore(session)


@pytest_asyncio.fixture
async def seeded(session_factory) -> None:
    async with session_factory() as db:
        await seed_defaults(EntityStore(db))


@pytest.fixture
def make_user(session_factory):
    """Create a committed user, optionally placing them in existing groups by name."""

    async def _make_user(username: str, *group_names: str) -> User:
        async with session_factory() as db:
            user_store = EntityStore(db)
            user = await user_store.create(
                User,
                username=username,
                email=f"{username}@example.com",
                password_hash=hash_password(PASSWORD),
            )
            for name in group_names:
                group = await user_store.find_by(Group, name=name)
                await user_store.add_pair(MEMBERSHIP, group.id, user.id)
            await user_store.commit()
            return user

    return _make_user


def _bearer(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def headers_for():
    return _bearer


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncIterator[AsyncClient]:
    async def _get_test_db():
        async with session_factory() as db:
            try:
                yield db
                await db.commit()
            except Exception:
                await db.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    limiter.reset()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def admin(seeded, make_user) -> User:
    return await make_user("admin", "Administrators")


@pytest.fixture
def admin_headers(admin: User) -> dict[str, str]:
    return _bearer(admin)
