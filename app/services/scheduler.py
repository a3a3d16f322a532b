# app/services/scheduler.py
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional
from fastapi import FastAPI

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from app.core.config import settings
from app.db.session import AsyncSessionLocal
from app.services.rate_limit import close_redis
from app.services.token_cleanup import cleanup_expired_tokens

scheduler: Optional[AsyncIOScheduler] = None


def build_scheduler() -> AsyncIOScheduler:
    """每 TOKEN_CLEANUP_INTERVAL_HOURS 小時清一次，啟動時先跑一次。"""
    sched = AsyncIOScheduler(timezone="UTC")
    sched.add_job(
        run_cleanup_job,
        IntervalTrigger(hours=settings.TOKEN_CLEANUP_INTERVAL_HOURS),
        id="token_cleanup",
        next_run_time=datetime.now(timezone.utc),
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    return sched


@asynccontextmanager
async def lifespan_scheduler(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan：啟動 / 關閉 APScheduler，關閉時一併收掉 Redis 連線。
    需接受 app 參數（FastAPI 會注入），否則會出現 TypeError。
    """
    global scheduler
    if settings.TOKEN_CLEANUP_ENABLED:
        scheduler = build_scheduler()
        scheduler.start()
        logger.info(
            "APScheduler started: token cleanup every {} hours",
            settings.TOKEN_CLEANUP_INTERVAL_HOURS,
        )
    try:
        yield
    finally:
        if scheduler:
            scheduler.shutdown(wait=False)
            scheduler = None
            logger.info("APScheduler shutdown")
        # 限流用的 Redis 連線
        await close_redis()


async def run_cleanup_job() -> None:
    """排程作業：建立一次性 DB session 清理過期 token；失敗只記 log，下一輪再試。"""
    async with AsyncSessionLocal() as db:
        try:
            result = await cleanup_expired_tokens(db)
        except Exception:
            logger.exception("Token cleanup failed")
            return
    logger.info(
        "Token cleanup done: blacklist={} refresh_tokens={}",
        result.blacklist,
        result.refresh_tokens,
    )
