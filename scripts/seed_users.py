# scripts/seed_users.py
import asyncio

from app.core.logging import setup_logging
from app.db.base import Base
from app.db.session import AsyncSessionLocal, engine
from app.schemas.user import UserCreate
from app.services.credential_store import UserStore

TEST_USER = UserCreate(
    email="test@example.com",
    password="TestPassword123",
    first_name="John",
    last_name="Doe",
    phone_number="+1234567890",
    date_of_birth="1990-01-15",
)


async def main():
    logger = setup_logging()
    # 本機 SQLite 尚未跑 Alembic 時也能直接 seed
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        store = UserStore(db)
        if await store.find_by_email(TEST_USER.email):
            logger.info("Test user already exists")
            return
        user = await store.create(TEST_USER.model_dump())
        logger.info("Test user created: id={} email={}", user.id, user.email)

if __name__ == "__main__":
    asyncio.run(main())
