# app/models/token_blacklist.py
from datetime import datetime
from sqlalchemy import String, Text, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from app.models.base import Base, new_id, utcnow


class TokenBlacklist(Base):
    __tablename__ = "token_blacklist"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    # 整個 token 字串（access 或 refresh）
    token: Mapped[str] = mapped_column(Text, index=True, nullable=False)

    # 到期時間（用來定期清理過期黑名單）
    expires_at: Mapped[datetime] = mapped_column(DateTime, index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<TokenBlacklist id={self.id} expires_at={self.expires_at}>"
