# app/core/deps.py
from typing import Optional
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.services.credential_store import UserStore
from app.services.rate_limit import check_general_and_hit, client_ip
from app.services.token_ledger import TokenLedger
from app.services.token_lifecycle import AuthContext, TokenService


# auto_error=False：缺 header 由 TokenService 丟 MissingCredential，錯誤格式才一致
bearer_scheme = HTTPBearer(auto_error=False)


async def general_rate_limit(request: Request) -> None:
    """全站每個 IP 的請求上限（掛在 app 層級）。"""
    allowed, retry_after = await check_general_and_hit(client_ip(request))
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many requests, please try again later",
            headers={"Retry-After": str(retry_after)},
        )


def get_user_store(db: AsyncSession = Depends(get_db)) -> UserStore:
    return UserStore(db)


def get_token_service(db: AsyncSession = Depends(get_db)) -> TokenService:
    return TokenService(users=UserStore(db), ledger=TokenLedger(db))


async def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    service: TokenService = Depends(get_token_service),
) -> AuthContext:
    """
    從 Bearer Access Token 解析目前使用者：
      - 沒帶 / 不是 Bearer → MissingCredential
      - 黑名單 → BlacklistedToken
      - 過期 / 簽章錯 → ExpiredToken / InvalidToken
      - 使用者不存在 → UserNotFound
    """
    token = credentials.credentials if credentials else None
    return await service.authenticate_access_token(token)
