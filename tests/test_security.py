# tests/test_security.py
from datetime import timedelta

import pytest
from jose import jwt

from app.core import security
from app.core.config import settings
from app.core.errors import TokenDecodeError
from app.core.security import TokenStatus


def test_access_and_refresh_use_different_keys():
    access = security.create_access_token("u1", "a@b.com")
    refresh = security.create_refresh_token("u1", "a@b.com")

    assert security.verify_access_token(access).status is TokenStatus.VALID
    assert security.verify_refresh_token(refresh).status is TokenStatus.VALID
    # 金鑰互換一律驗不過
    assert security.verify_refresh_token(access).status is TokenStatus.INVALID
    assert security.verify_access_token(refresh).status is TokenStatus.INVALID


def test_claims_carry_identity_and_kind():
    claims = security.verify_access_token(security.create_access_token("u1", "a@b.com")).claims

    assert claims["sub"] == "u1"
    assert claims["email"] == "a@b.com"
    assert claims["type"] == "access"
    assert claims["exp"] - claims["iat"] == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    assert claims["jti"]


def test_expired_token_reports_expired():
    token = security.create_refresh_token("u1", "a@b.com", expires_delta=timedelta(seconds=-1))
    result = security.verify_refresh_token(token)

    assert result.status is TokenStatus.EXPIRED
    assert not result.is_valid


def test_wrong_type_claim_is_invalid():
    token = jwt.encode(
        {"sub": "u1", "type": "refresh", "exp": 9999999999},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )
    assert security.verify_access_token(token).status is TokenStatus.INVALID


def test_decode_unverified_reads_expired_claims():
    token = security.create_access_token("u1", "a@b.com", expires_delta=timedelta(seconds=-30))
    claims = security.decode_unverified(token)
    assert claims["sub"] == "u1"
    assert security.seconds_until(claims["exp"]) < 0


@pytest.mark.parametrize("token", ["garbage", "a.b.c"])
def test_decode_unverified_raises_on_garbage(token):
    with pytest.raises(TokenDecodeError):
        security.decode_unverified(token)


def test_password_hash_roundtrip():
    hashed = security.hash_password("Secret123")
    assert security.verify_password("Secret123", hashed)
    assert not security.verify_password("Secret124", hashed)
    assert not security.verify_password("Secret123", "not-a-bcrypt-hash")


def test_identical_signing_keys_are_fatal(monkeypatch):
    monkeypatch.setattr(settings, "JWT_REFRESH_SECRET", settings.JWT_SECRET)
    with pytest.raises(RuntimeError):
        security.validate_signing_keys()


def test_short_keys_are_fatal_in_production(monkeypatch):
    monkeypatch.setattr(settings, "ENV", "prod")
    monkeypatch.setattr(settings, "JWT_SECRET", "short")
    with pytest.raises(RuntimeError, match="JWT_SECRET"):
        security.validate_signing_keys()
