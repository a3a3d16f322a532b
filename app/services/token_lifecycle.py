# app/services/token_lifecycle.py
"""
Token 生命週期：簽發、驗證 access、用 refresh 換 access、登出撤銷。

規則摘要：
  - access / refresh 分別用不同金鑰簽章
  - 黑名單檢查一律在驗簽之前
  - refresh token 不輪替，可重複使用到過期或被登出
  - 登出一定會把 access token 加入黑名單
"""
from dataclasses import dataclass
from typing import Optional, Tuple

from loguru import logger

from app.core.errors import (
    BlacklistedToken,
    ExpiredToken,
    InvalidCredentials,
    InvalidToken,
    MissingCredential,
    StoreFailure,
    UserNotFound,
)
from app.core.security import (
    TokenStatus,
    create_access_token,
    create_refresh_token,
    decode_unverified,
    expiry_from_claims,
    seconds_until,
    verify_access_token,
    verify_refresh_token,
)
from app.models.users import User
from app.services.credential_store import UserStore
from app.services.token_ledger import TokenLedger


@dataclass(frozen=True)
class IssuedTokens:
    access_token: str
    refresh_token: str
    expires_in: int


@dataclass(frozen=True)
class RefreshedAccess:
    access_token: str
    expires_in: int


@dataclass(frozen=True)
class AuthContext:
    """通過驗證的請求：使用者 + 當次使用的 access token（登出時要黑名單它）。"""

    user: User
    token: str


def _mint_access(user: User) -> Tuple[str, int]:
    token = create_access_token(user.id, user.email)
    exp = decode_unverified(token)["exp"]
    return token, seconds_until(exp)


class TokenService:
    def __init__(self, users: UserStore, ledger: TokenLedger) -> None:
        self.users = users
        self.ledger = ledger

    async def login(self, email: str, password: str) -> Tuple[User, IssuedTokens]:
        user = await self.users.find_by_email(email)
        if user is None or not self.users.verify_password(password, user.password_hash):
            # 統一訊息避免帳號探測
            logger.info("Login rejected: invalid credentials")
            raise InvalidCredentials()

        tokens = await self.issue(user)
        logger.info("Login succeeded", user_id=user.id)
        return user, tokens

    async def issue(self, user: User) -> IssuedTokens:
        """簽一組 access / refresh，並把 refresh 寫入 ledger；寫入失敗就不回傳任何 token。"""
        access_token, expires_in = _mint_access(user)
        refresh_token = create_refresh_token(user.id, user.email)
        refresh_exp = expiry_from_claims(decode_unverified(refresh_token))

        self.ledger.add_refresh_token(user.id, refresh_token, refresh_exp)
        await self.ledger.commit()
        return IssuedTokens(access_token, refresh_token, expires_in)

    async def authenticate_access_token(self, token: Optional[str]) -> AuthContext:
        """
        依序檢查：
          1️⃣ 有沒有帶 token
          2️⃣ 黑名單（先於驗簽）
          3️⃣ 簽章與 exp
          4️⃣ sub 對得到使用者
        """
        if not token:
            raise MissingCredential()

        if await self.ledger.is_blacklisted(token):
            raise BlacklistedToken()

        result = verify_access_token(token)
        if result.status is TokenStatus.EXPIRED:
            raise ExpiredToken()
        if result.status is TokenStatus.INVALID:
            raise InvalidToken()

        user = await self.users.find_by_id(result.claims["sub"])
        if user is None:
            raise UserNotFound()
        return AuthContext(user=user, token=token)

    async def refresh(self, refresh_token: str) -> RefreshedAccess:
        if await self.ledger.is_blacklisted(refresh_token):
            logger.info("Refresh rejected: blacklisted")
            raise BlacklistedToken("Refresh token has been revoked")

        record = await self.ledger.find_refresh_token(refresh_token)
        if record is None:
            logger.info("Refresh rejected: unknown token")
            raise InvalidToken("Invalid refresh token", code="INVALID_REFRESH_TOKEN")

        result = verify_refresh_token(refresh_token)
        if result.status is TokenStatus.EXPIRED:
            # 順手清掉已過期的那筆 ledger
            await self.ledger.delete_refresh_token(refresh_token)
            await self.ledger.commit()
            logger.info("Refresh rejected: expired", token_id=record.id)
            raise ExpiredToken("Refresh token has expired", code="REFRESH_TOKEN_EXPIRED")
        if result.status is TokenStatus.INVALID:
            logger.info("Refresh rejected: invalid", token_id=record.id)
            raise InvalidToken("Invalid refresh token", code="INVALID_REFRESH_TOKEN")

        user = await self.users.find_by_id(result.claims["sub"])
        if user is None:
            raise UserNotFound()

        access_token, expires_in = _mint_access(user)
        return RefreshedAccess(access_token, expires_in)

    async def revoke(self, access_token: str, refresh_token: Optional[str], caller_user_id: str) -> None:
        """
        登出：
          - access token 一定加入黑名單（解不開 exp 屬內部錯誤）
          - 有帶 refresh token 且屬於呼叫者：刪 ledger，再盡量加入黑名單
          - refresh token 不存在或屬於別人：什麼都不做，也不回報
        """
        access_claims = decode_unverified(access_token)
        self.ledger.add_to_blacklist(access_token, expiry_from_claims(access_claims))

        if refresh_token:
            record = await self.ledger.find_refresh_token(refresh_token)
            if record is not None and record.user_id == str(caller_user_id):
                await self.ledger.delete_refresh_token(refresh_token)
                self._blacklist_refresh_if_decodable(refresh_token, record.id)

        try:
            await self.ledger.commit()
        except StoreFailure:
            logger.error("Logout failed to persist", user_id=caller_user_id)
            raise
        logger.info("Tokens revoked", user_id=caller_user_id)

    def _blacklist_refresh_if_decodable(self, refresh_token: str, record_id: str) -> None:
        # ledger 已刪除，黑名單只是加強；過期或壞掉的 token 直接略過
        result = verify_refresh_token(refresh_token)
        if not result.is_valid:
            logger.debug("Refresh token not blacklisted: {}", result.status.value, token_id=record_id)
            return
        self.ledger.add_to_blacklist(refresh_token, expiry_from_claims(result.claims))
