# app/services/token_cleanup.py
from sqlalchemy.ext.asyncio import AsyncSession

from app.services.token_ledger import CleanupResult, TokenLedger


async def cleanup_expired_tokens(db: AsyncSession) -> CleanupResult:
    """刪除已過期的黑名單與 refresh token，回傳各自刪除數量。"""
    return await TokenLedger(db).purge_expired()
