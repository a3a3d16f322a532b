# app/db/base.py
# 匯入所有模型，讓 Base.metadata 完整（Alembic / create_all 用）
from app.models.base import Base  # noqa: F401
from app.models.users import User  # noqa: F401
from app.models.refresh_token import RefreshToken  # noqa: F401
from app.models.token_blacklist import TokenBlacklist  # noqa: F401
