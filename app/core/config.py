# app/core/config.py
from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # === App Info ===
    APP_NAME: str = "Profile Auth API"
    API_V1_PREFIX: str = "/api/v1"
    ENV: str = os.getenv("ENV", "dev")
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # === CORS ===
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
    ]

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors(cls, v: Any) -> List[str]:
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("["):
                import json
                return [x.strip() for x in json.loads(s)]
            return [x.strip() for x in s.split(",") if x.strip()]
        return v

    # === Database ===
    DATABASE_URL: str = "sqlite+aiosqlite:///./app.db"
    DB_ECHO: bool = False

    # === Auth / JWT ===
    # access 與 refresh 必須是兩把不同的金鑰
    JWT_SECRET: str = "change_this_access_secret_to_a_long_random_string"
    JWT_REFRESH_SECRET: str = "change_this_refresh_secret_to_another_long_string"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    # === Password hashing ===
    BCRYPT_ROUNDS: int = 12

    # === 過期 token 清理排程 ===
    TOKEN_CLEANUP_ENABLED: bool = True
    TOKEN_CLEANUP_INTERVAL_HOURS: int = 24

    # === Rate limit / Redis ===
    REDIS_URL: str = "redis://localhost:6379/0"
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_SEC: int = 60
    RATE_LIMIT_MAX_PER_IP: int = 5
    RATE_LIMIT_MAX_PER_EMAIL_IP: int = 5
    # 全站（每個 IP）：15 分鐘 1000 次
    RATE_LIMIT_GENERAL_WINDOW_SEC: int = 900
    RATE_LIMIT_GENERAL_MAX: int = 1000

    # === Observability（Sentry / Monitoring） ===
    SENTRY_DSN: Optional[str] = None
    SENTRY_ENV: str = "dev"
    SENTRY_TRACES_SAMPLE_RATE: float = 0.1

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def is_production_like(self) -> bool:
        return (self.ENV or "").lower() in {"prod", "production", "staging", "preview"}


@lru_cache
def get_settings() -> Settings:
    """測試環境停用限流與清理排程"""
    s = Settings()
    if s.ENV == "test":
        s.RATE_LIMIT_ENABLED = False
        s.TOKEN_CLEANUP_ENABLED = False
    return s


settings = get_settings()
