# scripts/run_cleanup_once.py
import asyncio

from app.core.logging import setup_logging
from app.db.session import AsyncSessionLocal
from app.services.token_cleanup import cleanup_expired_tokens


async def main():
    logger = setup_logging()
    async with AsyncSessionLocal() as db:
        result = await cleanup_expired_tokens(db)
    logger.info(
        "Deleted {} blacklist entries and {} refresh tokens",
        result.blacklist,
        result.refresh_tokens,
    )

if __name__ == "__main__":
    asyncio.run(main())
