# tests/test_credential_store.py
from datetime import date

import pytest

from app.core.errors import EmailAlreadyExists
from tests.helpers import DEFAULT_PASSWORD, user_fields

pytestmark = pytest.mark.asyncio


async def test_create_normalizes_email_and_hashes_password(users):
    created = await users.create(user_fields(email="  Mixed@Case.COM "))

    assert created.email == "mixed@case.com"
    assert created.password_hash != DEFAULT_PASSWORD
    assert users.verify_password(DEFAULT_PASSWORD, created.password_hash)
    assert not users.verify_password("nope", created.password_hash)
    assert (await users.find_by_email("MIXED@case.com")).id == created.id


async def test_create_rejects_duplicate_email(users, user):
    with pytest.raises(EmailAlreadyExists):
        await users.create(user_fields(email="A@B.COM"))


async def test_update_allowed_fields_and_bumps_updated_at(users, user):
    before = user.updated_at

    updated = await users.update(
        user.id,
        {
            "first_name": "Jane",
            "phone_number": "+15551234567",
            "date_of_birth": date(1990, 1, 15),
            "email": "hijack@b.com",
            "password_hash": "x",
        },
    )

    assert updated.first_name == "Jane"
    assert updated.phone_number == "+15551234567"
    assert updated.date_of_birth == date(1990, 1, 15)
    assert updated.email == "a@b.com"
    assert updated.password_hash != "x"
    assert updated.updated_at >= before


async def test_update_without_changes_returns_user(users, user):
    same = await users.update(user.id, {"last_name": None})
    assert same.last_name == "Doe"


async def test_update_unknown_user_returns_none(users):
    assert await users.update("missing", {"first_name": "Jane"}) is None
    assert await users.find_by_id("missing") is None
