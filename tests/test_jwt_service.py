"""Worker identity tokens."""
from datetime import timedelta

import jwt
import pytest

from app.core.config import settings
from app.services.jwt_service import JwtService, ROLE_LEVELS
from atams.exceptions import UnauthorizedException


def test_token_round_trip_carries_identity():
    service = JwtService()
    token = service.generate_token(42, "ACME", role="manager")

    identity = service.verify_token(token)

    assert identity == {"user_id": 42, "company_id": "ACME", "role": "manager", "role_level": ROLE_LEVELS["manager"]}


def test_expired_token_is_rejected():
    service = JwtService()
    token = service.generate_token(42, "ACME", expires_in=timedelta(seconds=-5))

    with pytest.raises(UnauthorizedException) as exc:
        service.verify_token(token)

    assert exc.value.message == "Token expired"


def test_token_signed_with_other_secret_is_rejected():
    token = jwt.encode(
        {"iss": settings.AUTH_JWT_ISSUER, "sub": "42", "company_id": "ACME", "role": "worker", "exp": 4102444800},
        "another-secret-with-enough-length-for-hs256",
        algorithm="HS256",
    )

    with pytest.raises(UnauthorizedException):
        JwtService().verify_token(token)


def test_token_without_company_is_rejected():
    service = JwtService()
    token = jwt.encode(
        {"iss": settings.AUTH_JWT_ISSUER, "sub": "42", "role": "worker", "exp": 4102444800},
        service.secret,
        algorithm=service.algorithm,
    )

    with pytest.raises(UnauthorizedException):
        service.verify_token(token)


def test_unknown_role_cannot_be_issued():
    with pytest.raises(ValueError):
        JwtService().generate_token(42, "ACME", role="owner")


def test_settings_require_signing_secret(monkeypatch):
    from pydantic import ValidationError
    from app.core.config import Settings

    monkeypatch.delenv("AUTH_JWT_SECRET", raising=False)

    with pytest.raises(ValidationError) as exc:
        Settings(_env_file=None)

    assert "AUTH_JWT_SECRET" in str(exc.value)
