# app/api/v1/endpoints/auth.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status, Request

from app.core.deps import get_auth_context, get_token_service
from app.schemas.auth import AccessToken, LoginRequest, LogoutRequest, RefreshRequest, TokenPair
from app.schemas.common import success_response
from app.schemas.user import UserRead
from app.services.rate_limit import check_limit_and_hit, client_ip, reset_success
from app.services.token_lifecycle import AuthContext, TokenService

AUTH_LIMIT_MESSAGE = "Too many authentication attempts, please try again later"


def _too_many(retry_after: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=AUTH_LIMIT_MESSAGE,
        headers={"Retry-After": str(retry_after)},
    )


async def auth_rate_limit(request: Request) -> None:
    """/auth 底下每條路由共用的 IP 桶，先於驗證與 body 處理。"""
    allowed, retry_after = await check_limit_and_hit(client_ip(request), None)
    if not allowed:
        raise _too_many(retry_after)


router = APIRouter(tags=["auth"], dependencies=[Depends(auth_rate_limit)])


# === 登入（IP 桶之外再加 email+IP 桶） ===
@router.post("/login")
async def login(
    request: Request,
    payload: LoginRequest,
    service: TokenService = Depends(get_token_service),
):
    """
    使用者登入，簽發 Access / Refresh，refresh token 寫入 ledger。
    """
    ip = client_ip(request)

    allowed, retry_after = await check_limit_and_hit(ip, payload.email)
    if not allowed:
        raise _too_many(retry_after)

    user, tokens = await service.login(payload.email, payload.password)

    # ✅ 登入成功後清空 email+IP 的嘗試（避免誤鎖）
    await reset_success(ip, payload.email)

    return success_response(
        {
            "user": UserRead.model_validate(user).model_dump(mode="json", by_alias=True),
            "tokens": TokenPair(
                access_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                expires_in=tokens.expires_in,
            ).model_dump(by_alias=True),
        },
        "Login successful",
    )


# === 用 Refresh Token 換新的 Access Token（refresh 本身不輪替） ===
@router.post("/refresh")
async def refresh_token(
    payload: RefreshRequest,
    service: TokenService = Depends(get_token_service),
):
    refreshed = await service.refresh(payload.refresh_token)
    return success_response(
        AccessToken(
            access_token=refreshed.access_token,
            expires_in=refreshed.expires_in,
        ).model_dump(by_alias=True)
    )


# === 單次登出 ===
@router.post("/logout")
async def logout(
    payload: Optional[LogoutRequest] = None,
    ctx: AuthContext = Depends(get_auth_context),
    service: TokenService = Depends(get_token_service),
):
    """單次登出：access 一定加入黑名單；refresh 屬於自己才刪除並加入黑名單"""
    refresh = payload.refresh_token if payload else None
    await service.revoke(ctx.token, refresh, ctx.user.id)
    return success_response(message="Logout successful")


# === 驗證 Token ===
@router.get("/me")
async def read_me(ctx: AuthContext = Depends(get_auth_context)):
    return success_response({"user": UserRead.model_validate(ctx.user).model_dump(mode="json", by_alias=True)})
