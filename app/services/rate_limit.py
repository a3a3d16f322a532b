# app/services/rate_limit.py
from __future__ import annotations

import time
from typing import List, Optional, Tuple

from fastapi import Request
from redis.asyncio import Redis
from app.core.config import settings

# 單例 Redis（lazy-init）
_redis: Optional[Redis] = None

# (key, 上限, 視窗秒數)
Bucket = Tuple[str, int, int]


def _enabled() -> bool:
    # 每次呼叫才讀設定，測試可直接 monkeypatch settings
    return bool(settings.RATE_LIMIT_ENABLED)


def get_redis() -> Redis:
    """Lazy 初始化 Redis 連線。"""
    global _redis
    if _redis is None:
        _redis = Redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def client_ip(request: Request) -> str:
    return (request.client.host if request.client else "unknown") or "unknown"


def _key_ip(ip: str) -> str:
    return f"rl:auth:ip:{ip or 'unknown'}"


def _key_email_ip(email: str, ip: str) -> str:
    return f"rl:auth:ei:{(email or '').lower()}|{ip or 'unknown'}"


def _key_general(ip: str) -> str:
    return f"rl:all:ip:{ip or 'unknown'}"


async def _prune(redis: Redis, key: str, now_s: float, window: int) -> None:
    """移除滑動視窗外的紀錄（score < now - window）。"""
    await redis.zremrangebyscore(key, "-inf", now_s - window)


async def _count(redis: Redis, key: str) -> int:
    return int(await redis.zcard(key))


async def _retry_after(redis: Redis, key: str, now_s: float, window: int) -> int:
    """距離窗口內最舊一次嘗試出窗的剩餘秒數（>=1）。"""
    data = await redis.zrange(key, 0, 0, withscores=True)
    oldest = float(data[0][1]) if data else now_s
    return max(1, int(window - (now_s - oldest)))


async def _hit(redis: Redis, key: str, now_s: float, window: int) -> None:
    """記錄一次嘗試（ZSET，score=now）。"""
    await redis.zadd(key, {f"{now_s:.6f}": now_s})
    await redis.expire(key, window)


async def _check_buckets(buckets: List[Bucket]) -> Tuple[bool, int]:
    """任一桶已滿就拒絕（不記錄）；全部允許才各記一次。"""
    r = get_redis()
    now_s = time.time()

    for key, maximum, window in buckets:
        await _prune(r, key, now_s, window)
        if await _count(r, key) >= maximum:
            return False, await _retry_after(r, key, now_s, window)

    for key, _, window in buckets:
        await _hit(r, key, now_s, window)
    return True, 0


async def check_limit_and_hit(ip: str, email: Optional[str]) -> Tuple[bool, int]:
    """
    /auth 路由的限流檢查；若允許，會「順便記一次嘗試」。
    回傳：(allowed, retry_after_seconds)
      沒帶 email：只看 IP 維度（refresh / logout / me）
      有帶 email：只看 email+IP 維度（login 另外加的一層）
    """
    if not _enabled():
        return True, 0

    window = settings.RATE_LIMIT_WINDOW_SEC
    if email:
        buckets = [(_key_email_ip(email, ip), settings.RATE_LIMIT_MAX_PER_EMAIL_IP, window)]
    else:
        buckets = [(_key_ip(ip), settings.RATE_LIMIT_MAX_PER_IP, window)]
    return await _check_buckets(buckets)


async def check_general_and_hit(ip: str) -> Tuple[bool, int]:
    """全站每個 IP 的寬鬆上限。"""
    if not _enabled():
        return True, 0
    return await _check_buckets(
        [(_key_general(ip), settings.RATE_LIMIT_GENERAL_MAX, settings.RATE_LIMIT_GENERAL_WINDOW_SEC)]
    )


async def reset_success(ip: str, email: Optional[str]) -> None:
    """
    登入成功後清空 email+IP 的桶，降低誤鎖風險。
    IP 維度不清空，保留反掃號的保護力。
    """
    if not email or not _enabled():
        return
    await get_redis().delete(_key_email_ip(email, ip))
