# app/api/v1/endpoints/profile.py
from fastapi import APIRouter, Depends

from app.core.deps import get_auth_context, get_user_store
from app.core.errors import ProfileNotFound
from app.schemas.common import success_response
from app.schemas.user import ProfileUpdate, UserRead
from app.services.credential_store import UserStore
from app.services.token_lifecycle import AuthContext

router = APIRouter(tags=["user"])


def _user_payload(user) -> dict:
    # password_hash 不在 UserRead 中，不會外流
    return {"user": UserRead.model_validate(user).model_dump(mode="json", by_alias=True)}


# === 取得個人資料（需要登入） ===
@router.get("/profile")
async def get_profile(
    ctx: AuthContext = Depends(get_auth_context),
    users: UserStore = Depends(get_user_store),
):
    user = await users.find_by_id(ctx.user.id)
    if user is None:
        raise ProfileNotFound()
    return success_response(_user_payload(user))


# === 更新個人資料（需要登入） ===
@router.put("/profile")
async def update_profile(
    payload: ProfileUpdate,
    ctx: AuthContext = Depends(get_auth_context),
    users: UserStore = Depends(get_user_store),
):
    user = await users.update(ctx.user.id, payload.model_dump(exclude_unset=True))
    if user is None:
        raise ProfileNotFound()
    return success_response(_user_payload(user), "Profile updated successfully")
