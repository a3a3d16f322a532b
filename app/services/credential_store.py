# app/services/credential_store.py
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import EmailAlreadyExists, StoreFailure
from app.core.security import hash_password, verify_password as _verify_password
from app.models.base import utcnow
from app.models.users import User

# 個人資料可更新的欄位（email / 密碼不在此列）
UPDATABLE_FIELDS = ("first_name", "last_name", "phone_number", "date_of_birth", "profile_picture")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class UserStore:
    """users 表的讀寫；所有 SQLAlchemy 錯誤轉成 StoreFailure。"""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_by_email(self, email: str) -> Optional[User]:
        try:
            result = await self.session.execute(select(User).where(User.email == normalize_email(email)))
        except SQLAlchemyError as exc:
            raise StoreFailure("users lookup by email failed") from exc
        return result.scalar_one_or_none()

    async def find_by_id(self, user_id: str) -> Optional[User]:
        try:
            return await self.session.get(User, str(user_id))
        except SQLAlchemyError as exc:
            raise StoreFailure("users lookup by id failed") from exc

    @staticmethod
    def verify_password(plain: str, password_hash: str) -> bool:
        return _verify_password(plain, password_hash)

    async def create(self, fields: Mapping[str, Any]) -> User:
        """
        建立使用者：email 轉小寫、密碼雜湊。
        email 重複時丟 EmailAlreadyExists。
        """
        data: Dict[str, Any] = {k: fields.get(k) for k in UPDATABLE_FIELDS}
        email = normalize_email(fields["email"])
        if await self.find_by_email(email) is not None:
            raise EmailAlreadyExists()

        user = User(email=email, password_hash=hash_password(fields["password"]), **data)
        self.session.add(user)
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise EmailAlreadyExists() from exc
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise StoreFailure("users insert failed") from exc
        await self.session.refresh(user)
        return user

    async def update(self, user_id: str, partial: Mapping[str, Any]) -> Optional[User]:
        """
        部分更新：只接受 UPDATABLE_FIELDS，值為 None 的欄位略過。
        找不到使用者回傳 None；沒有任何欄位可改時原樣回傳。
        """
        user = await self.find_by_id(user_id)
        if user is None:
            return None

        changes = {k: v for k, v in partial.items() if k in UPDATABLE_FIELDS and v is not None}
        if not changes:
            return user

        for key, value in changes.items():
            setattr(user, key, value)
        user.updated_at = utcnow()
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise StoreFailure("users update failed") from exc
        await self.session.refresh(user)
        return user
