# tests/conftest.py
import asyncio
import os
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# ---- 測試期環境變數（先於 app 載入）----
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")
# bcrypt 最低成本，加快測試
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from app.main import app  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.db.session import AsyncSessionLocal, engine  # noqa: E402
from app.services.credential_store import UserStore  # noqa: E402
from app.services.token_ledger import TokenLedger  # noqa: E402
from app.services.token_lifecycle import TokenService  # noqa: E402
from tests.helpers import user_fields  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def create_test_db():
    """測試前自動 drop_all + create_all，測試後 drop_all（用 asyncio.run 避免事件圈衝突）。"""
    async def init_models():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)

    async def drop_models():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()

    asyncio.run(init_models())
    yield
    asyncio.run(drop_models())


@pytest_asyncio.fixture
async def client():
    """使用 ASGITransport 直接掛載 app，不需啟動伺服器。"""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


@pytest_asyncio.fixture
async def api_user():
    """在 app 使用的測試 DB 建一個使用者，回傳 (email, password, user_id)。"""
    fields = user_fields()
    async with AsyncSessionLocal() as session:
        user = await UserStore(session).create(fields)
    return fields["email"], fields["password"], user.id


# ---- service 層測試：每個測試一顆獨立的 in-memory SQLite ----
@pytest_asyncio.fixture
async def db_session():
    mem_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with mem_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(bind=mem_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await mem_engine.dispose()


@pytest.fixture
def users(db_session):
    return UserStore(db_session)


@pytest.fixture
def ledger(db_session):
    return TokenLedger(db_session)


@pytest.fixture
def service(users, ledger):
    return TokenService(users=users, ledger=ledger)


@pytest_asyncio.fixture
async def user(users):
    return await users.create(user_fields(email="a@b.com"))
