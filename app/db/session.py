# app/db/session.py
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool
from app.core.config import settings


def build_engine(url: str = settings.DATABASE_URL):
    kwargs = {"echo": settings.DB_ECHO, "pool_pre_ping": True}
    if settings.ENV == "test":
        # 測試時每個 event loop 各自開連線，不共用連線池
        kwargs["poolclass"] = NullPool
    return create_async_engine(url, **kwargs)


# ---- Engine ----
engine = build_engine()

# ---- Session factory ----
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# ---- Dependency ----
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI 依賴：產生一個 AsyncSession，並在完成後總是關閉。
    """
    async with AsyncSessionLocal() as session:
        yield session
