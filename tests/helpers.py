# tests/helpers.py
from uuid import uuid4

DEFAULT_PASSWORD = "MyStrongPass1"


def user_fields(email=None, password=DEFAULT_PASSWORD, **overrides):
    fields = {
        "email": email or f"user-{uuid4().hex[:10]}@example.com",
        "password": password,
        "first_name": "John",
        "last_name": "Doe",
    }
    fields.update(overrides)
    return fields


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
