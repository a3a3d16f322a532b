# app/core/security.py
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4
import time

from jose import jwt, ExpiredSignatureError, JWTError
from passlib.context import CryptContext

from app.core.config import settings
from app.core.errors import TokenDecodeError

# === Password Hashing ===
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__ident="2b",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
    # 若密碼超過 72 bytes，不拋錯
    bcrypt__truncate_error=False,
)

def _sanitize_password(p: str) -> str:
    # bcrypt 只吃前 72 bytes，避免極長密碼在某些環境報錯
    return p[:72] if isinstance(p, str) else p

def hash_password(plain: str) -> str:
    return pwd_context.hash(_sanitize_password(plain))

def verify_password(plain: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(_sanitize_password(plain), password_hash)
    except ValueError:
        # DB 裡的雜湊格式壞掉時視為密碼錯誤
        return False

# === Time Helpers ===
def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def to_db_time(value: datetime) -> datetime:
    """DB 一律存 naive UTC。"""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

def expiry_from_claims(claims: Dict[str, Any]) -> datetime:
    """由 exp claim（epoch 秒）換成 naive UTC datetime，給 DB 欄位用。"""
    return datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc).replace(tzinfo=None)

def seconds_until(exp: int) -> int:
    """exp 減現在時間，取整數秒（floor）。"""
    return int(exp) - int(time.time())

# === Token Kinds / Verification Outcome ===
class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenStatus(Enum):
    VALID = "valid"
    EXPIRED = "expired"
    INVALID = "invalid"


@dataclass(frozen=True)
class TokenVerification:
    status: TokenStatus
    claims: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return self.status is TokenStatus.VALID


def _secret_for(kind: TokenKind) -> str:
    return settings.JWT_SECRET if kind is TokenKind.ACCESS else settings.JWT_REFRESH_SECRET

def _lifetime_for(kind: TokenKind) -> timedelta:
    minutes = (
        settings.ACCESS_TOKEN_EXPIRE_MINUTES
        if kind is TokenKind.ACCESS
        else settings.REFRESH_TOKEN_EXPIRE_MINUTES
    )
    return timedelta(minutes=minutes)

# === Issue Tokens ===
def create_token(
    kind: TokenKind,
    user_id: str,
    email: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    簽發 JWT（sub, email, type, jti, iat, exp）。
    jti 讓同一秒內簽出的兩張 token 也不會是同一個字串。
    """
    now = utc_now()
    claims = {
        "sub": str(user_id),
        "email": email,
        "type": kind.value,
        "jti": str(uuid4()),
        "iat": int(now.timestamp()),
        "exp": now + (expires_delta if expires_delta is not None else _lifetime_for(kind)),
    }
    return jwt.encode(claims, _secret_for(kind), algorithm=settings.JWT_ALGORITHM)

def create_access_token(user_id: str, email: str, expires_delta: Optional[timedelta] = None) -> str:
    return create_token(TokenKind.ACCESS, user_id, email, expires_delta)

def create_refresh_token(user_id: str, email: str, expires_delta: Optional[timedelta] = None) -> str:
    return create_token(TokenKind.REFRESH, user_id, email, expires_delta)

# === Verify / Decode ===
def verify_token(token: str, kind: TokenKind) -> TokenVerification:
    """
    驗簽 + 驗 exp；結果只會是 VALID / EXPIRED / INVALID 三者之一。
    type claim 不符（例如拿 refresh 來當 access）視為 INVALID。
    """
    try:
        claims = jwt.decode(token, _secret_for(kind), algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError:
        return TokenVerification(TokenStatus.EXPIRED)
    except JWTError:
        return TokenVerification(TokenStatus.INVALID)

    if claims.get("type") != kind.value or not claims.get("sub") or "exp" not in claims:
        return TokenVerification(TokenStatus.INVALID)
    return TokenVerification(TokenStatus.VALID, claims)

def verify_access_token(token: str) -> TokenVerification:
    return verify_token(token, TokenKind.ACCESS)

def verify_refresh_token(token: str) -> TokenVerification:
    return verify_token(token, TokenKind.REFRESH)

def decode_unverified(token: str) -> Dict[str, Any]:
    """
    只解 payload、不驗簽（登出時取 exp 用）。
    解不開代表 token 本身壞掉，丟 TokenDecodeError。
    """
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError as exc:
        raise TokenDecodeError("token payload cannot be decoded") from exc
    if not isinstance(claims.get("exp"), (int, float)):
        raise TokenDecodeError("token has no numeric exp claim")
    return claims

def validate_signing_keys() -> None:
    """
    啟動檢查：access / refresh 金鑰不可相同；
    prod/staging/preview 環境不允許短或空的金鑰。
    """
    if not settings.JWT_SECRET or not settings.JWT_REFRESH_SECRET:
        raise RuntimeError("JWT_SECRET and JWT_REFRESH_SECRET must both be set.")
    if settings.JWT_SECRET == settings.JWT_REFRESH_SECRET:
        raise RuntimeError("JWT_SECRET and JWT_REFRESH_SECRET must be different keys.")
    if settings.is_production_like:
        weak = [
            name
            for name, value in (
                ("JWT_SECRET", settings.JWT_SECRET),
                ("JWT_REFRESH_SECRET", settings.JWT_REFRESH_SECRET),
            )
            if len(value) < 32
        ]
        if weak:
            raise RuntimeError(
                f"Insecure config for {', '.join(weak)} in ENV={settings.ENV}. "
                "Please set strong keys via environment variables."
            )
