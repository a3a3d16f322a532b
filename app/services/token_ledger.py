# app/services/token_ledger.py
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, exists, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import StoreFailure
from app.core.security import to_db_time
from app.models.base import utcnow
from app.models.refresh_token import RefreshToken
from app.models.token_blacklist import TokenBlacklist


@dataclass(frozen=True)
class CleanupResult:
    blacklist: int
    refresh_tokens: int

    @property
    def total(self) -> int:
        return self.blacklist + self.refresh_tokens


class TokenLedger:
    """
    refresh_tokens 與 token_blacklist 兩張表的存取。
    寫入只 add / delete，交易邊界由呼叫端的 commit() 決定。
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # --- refresh_tokens ---
    def add_refresh_token(self, user_id: str, token: str, expires_at: datetime) -> RefreshToken:
        record = RefreshToken(user_id=str(user_id), token=token, expires_at=to_db_time(expires_at))
        self.session.add(record)
        return record

    async def find_refresh_token(self, token: str) -> Optional[RefreshToken]:
        try:
            result = await self.session.execute(select(RefreshToken).where(RefreshToken.token == token))
        except SQLAlchemyError as exc:
            raise StoreFailure("refresh_tokens lookup failed") from exc
        return result.scalar_one_or_none()

    async def delete_refresh_token(self, token: str) -> int:
        """回傳實際刪掉的筆數（0 代表已被別人刪掉）。"""
        try:
            result = await self.session.execute(delete(RefreshToken).where(RefreshToken.token == token))
        except SQLAlchemyError as exc:
            raise StoreFailure("refresh_tokens delete failed") from exc
        return result.rowcount or 0

    # --- token_blacklist ---
    def add_to_blacklist(self, token: str, expires_at: datetime) -> TokenBlacklist:
        entry = TokenBlacklist(token=token, expires_at=to_db_time(expires_at))
        self.session.add(entry)
        return entry

    async def is_blacklisted(self, token: str) -> bool:
        try:
            result = await self.session.execute(
                select(exists().where(TokenBlacklist.token == token))
            )
        except SQLAlchemyError as exc:
            raise StoreFailure("token_blacklist lookup failed") from exc
        return bool(result.scalar())

    # --- 清理 ---
    async def purge_expired(self, now: Optional[datetime] = None) -> CleanupResult:
        """刪除兩張表中 expires_at 已過的資料，並 commit。"""
        cutoff = to_db_time(now) if now is not None else utcnow()
        try:
            bl = await self.session.execute(delete(TokenBlacklist).where(TokenBlacklist.expires_at < cutoff))
            rt = await self.session.execute(delete(RefreshToken).where(RefreshToken.expires_at < cutoff))
        except SQLAlchemyError as exc:
            await self.rollback()
            raise StoreFailure("expired token purge failed") from exc
        await self.commit()
        return CleanupResult(blacklist=bl.rowcount or 0, refresh_tokens=rt.rowcount or 0)

    # --- 交易 ---
    async def commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.rollback()
            raise StoreFailure("token ledger commit failed") from exc

    async def rollback(self) -> None:
        await self.session.rollback()
