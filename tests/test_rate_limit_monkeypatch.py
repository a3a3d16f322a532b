# tests/test_rate_limit_monkeypatch.py
import pytest
from httpx import AsyncClient

from app.core.config import settings
from app.main import app
from app.services import rate_limit
from app.services.scheduler import lifespan_scheduler

pytestmark = pytest.mark.asyncio


async def test_login_rate_limited_via_monkeypatch(client: AsyncClient, api_user, monkeypatch):
    email, password, _ = api_user

    # patch 到路由實際引用的位置，且路由端以 await 呼叫 -> 假函式必須是 async
    async def _deny(*args, **kwargs):
        return False, 60

    monkeypatch.setattr("app.api.v1.endpoints.auth.check_limit_and_hit", _deny, raising=True)

    r = await client.post("/api/v1/auth/login", json={"email": email, "password": password})

    assert r.status_code == 429, r.text
    assert r.headers["Retry-After"] == "60"
    assert r.json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"


class _FakeRedis:
    """只實作限流用到的 sorted-set 指令。"""

    def __init__(self):
        self.zsets = {}

    async def zremrangebyscore(self, key, low, high):
        z = self.zsets.get(key, {})
        for member in [m for m, s in z.items() if s <= high]:
            del z[member]

    async def zcard(self, key):
        return len(self.zsets.get(key, {}))

    async def zrange(self, key, start, end, withscores=False):
        items = sorted(self.zsets.get(key, {}).items(), key=lambda kv: kv[1])
        return items[start:end + 1]

    async def zadd(self, key, mapping):
        self.zsets.setdefault(key, {}).update(mapping)

    async def expire(self, key, seconds):
        return True

    async def delete(self, key):
        self.zsets.pop(key, None)


async def test_sliding_window_blocks_after_max(monkeypatch):
    fake = _FakeRedis()
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(settings, "RATE_LIMIT_MAX_PER_IP", 100)
    monkeypatch.setattr(settings, "RATE_LIMIT_MAX_PER_EMAIL_IP", 2)
    monkeypatch.setattr(rate_limit, "get_redis", lambda: fake)

    assert (await rate_limit.check_limit_and_hit("1.2.3.4", "a@b.com"))[0] is True
    assert (await rate_limit.check_limit_and_hit("1.2.3.4", "a@b.com"))[0] is True
    allowed, retry_after = await rate_limit.check_limit_and_hit("1.2.3.4", "a@b.com")
    assert allowed is False
    assert 1 <= retry_after <= settings.RATE_LIMIT_WINDOW_SEC

    # 成功登入後清空 email+IP 桶
    await rate_limit.reset_success("1.2.3.4", "a@b.com")
    assert (await rate_limit.check_limit_and_hit("1.2.3.4", "a@b.com"))[0] is True


async def test_disabled_limiter_never_touches_redis(monkeypatch):
    def _no_redis():
        raise AssertionError("redis should not be used")

    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", False)
    monkeypatch.setattr(rate_limit, "get_redis", _no_redis)

    assert await rate_limit.check_limit_and_hit("1.2.3.4", "a@b.com") == (True, 0)
    await rate_limit.reset_success("1.2.3.4", "a@b.com")


async def _deny(*args, **kwargs):
    return False, 30


@pytest.mark.parametrize(
    "method,path,body",
    [
        ("POST", "/api/v1/auth/refresh", {"refreshToken": "x"}),
        ("POST", "/api/v1/auth/logout", None),
        ("GET", "/api/v1/auth/me", None),
    ],
)
async def test_every_auth_route_shares_the_ip_limit(client: AsyncClient, monkeypatch, method, path, body):
    monkeypatch.setattr("app.api.v1.endpoints.auth.check_limit_and_hit", _deny, raising=True)

    r = await client.request(method, path, json=body)

    # 限流先於 token 驗證
    assert r.status_code == 429, r.text
    assert r.headers["Retry-After"] == "30"
    assert r.json()["error"] == {
        "code": "RATE_LIMIT_EXCEEDED",
        "message": "Too many authentication attempts, please try again later",
    }


async def test_general_limit_applies_outside_auth(client: AsyncClient, monkeypatch):
    monkeypatch.setattr("app.core.deps.check_general_and_hit", _deny, raising=True)

    for path in ("/api/v1/health", "/api/v1/user/profile", "/healthz"):
        r = await client.get(path)
        assert r.status_code == 429, path
        assert r.json()["error"]["message"] == "Too many requests, please try again later"


async def test_refresh_blocked_after_ip_budget_spent(client: AsyncClient, monkeypatch):
    fake = _FakeRedis()
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(settings, "RATE_LIMIT_MAX_PER_IP", 2)
    monkeypatch.setattr(rate_limit, "get_redis", lambda: fake)

    codes = [
        (await client.post("/api/v1/auth/refresh", json={"refreshToken": "x"})).status_code
        for _ in range(3)
    ]

    assert codes == [401, 401, 429]


async def test_login_counts_ip_bucket_once(client: AsyncClient, api_user, monkeypatch):
    email, password, _ = api_user
    fake = _FakeRedis()
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(rate_limit, "get_redis", lambda: fake)

    r = await client.post("/api/v1/auth/login", json={"email": email, "password": "WrongPass1"})

    assert r.status_code == 401
    ip_keys = [k for k in fake.zsets if k.startswith("rl:auth:ip:")]
    assert len(ip_keys) == 1
    assert await fake.zcard(ip_keys[0]) == 1
    assert any(k.startswith("rl:auth:ei:") for k in fake.zsets)
    assert any(k.startswith("rl:all:ip:") for k in fake.zsets)


async def test_general_bucket_sliding_window(monkeypatch):
    fake = _FakeRedis()
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(settings, "RATE_LIMIT_GENERAL_MAX", 2)
    monkeypatch.setattr(rate_limit, "get_redis", lambda: fake)

    assert (await rate_limit.check_general_and_hit("9.9.9.9"))[0] is True
    assert (await rate_limit.check_general_and_hit("9.9.9.9"))[0] is True
    allowed, retry_after = await rate_limit.check_general_and_hit("9.9.9.9")
    assert allowed is False
    assert 1 <= retry_after <= settings.RATE_LIMIT_GENERAL_WINDOW_SEC
    # 其他 IP 不受影響
    assert (await rate_limit.check_general_and_hit("8.8.8.8"))[0] is True


async def test_lifespan_shutdown_closes_redis(monkeypatch):
    closed = []

    class _Conn:
        async def aclose(self):
            closed.append(True)

    monkeypatch.setattr(rate_limit, "_redis", _Conn())

    async with lifespan_scheduler(app):
        pass

    assert closed == [True]
    assert rate_limit._redis is None
