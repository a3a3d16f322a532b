# app/schemas/user.py
import re
from typing import Annotated, Optional
from datetime import date, datetime
from pydantic import AfterValidator, EmailStr, Field, field_validator

from app.schemas.common import CamelModel

NAME_RE = re.compile(r"^[a-zA-Z\s]+$")
PHONE_RE = re.compile(r"^\+?[1-9]\d{1,14}$")
MIN_PASSWORD_LENGTH = 8


def _check_name(v: str) -> str:
    if not NAME_RE.match(v):
        raise ValueError("must contain only letters")
    return v


def _check_phone(v: str) -> str:
    if not PHONE_RE.match(v):
        raise ValueError("Phone number must be in E.164 format")
    return v


def _check_birth_date(v: date) -> date:
    if v >= date.today():
        raise ValueError("Date of birth must be in the past")
    return v


NameStr = Annotated[str, Field(min_length=2, max_length=50), AfterValidator(_check_name)]
PhoneStr = Annotated[str, AfterValidator(_check_phone)]
BirthDate = Annotated[date, AfterValidator(_check_birth_date)]
PictureStr = Annotated[str, Field(max_length=500)]


def is_strong_password(password: str) -> bool:
    """至少 8 碼，且需含大寫、小寫與數字。"""
    if not isinstance(password, str):
        return False
    return (
        len(password) >= MIN_PASSWORD_LENGTH
        and re.search(r"[A-Z]", password) is not None
        and re.search(r"[a-z]", password) is not None
        and re.search(r"\d", password) is not None
    )


class UserCreate(CamelModel):
    email: EmailStr
    # 僅用於建立帳號的輸入，不會在輸出 schema 中出現
    password: str
    first_name: NameStr
    last_name: NameStr
    phone_number: Optional[PhoneStr] = None
    date_of_birth: Optional[BirthDate] = None
    profile_picture: Optional[PictureStr] = None

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("password")
    @classmethod
    def _strong_password(cls, v: str) -> str:
        if not is_strong_password(v):
            raise ValueError(
                "Password must be at least 8 characters and contain upper-case, lower-case and a digit"
            )
        return v


class UserRead(CamelModel):
    id: str
    email: str
    first_name: str
    last_name: str
    phone_number: Optional[str] = None
    date_of_birth: Optional[date] = None
    profile_picture: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# 部分更新；email 與密碼不在此處更新
class ProfileUpdate(CamelModel):
    first_name: Optional[NameStr] = None
    last_name: Optional[NameStr] = None
    phone_number: Optional[PhoneStr] = None
    date_of_birth: Optional[BirthDate] = None
    profile_picture: Optional[PictureStr] = None

    # 沒帶的欄位略過；明確送 null 則視為格式錯誤
    @field_validator("*", mode="before")
    @classmethod
    def _reject_null(cls, v):
        if v is None:
            raise ValueError("must not be null")
        return v
