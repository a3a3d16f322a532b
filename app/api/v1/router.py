# app/api/v1/router.py
from fastapi import APIRouter

from .endpoints import health, auth, profile

# === API v1 主路由 ===
api_router = APIRouter()

# 系統健康檢查
api_router.include_router(health.router, prefix="/health", tags=["health"])

# 認證 / 登入 / Refresh Token / 登出
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])

# 個人資料
api_router.include_router(profile.router, prefix="/user", tags=["user"])
