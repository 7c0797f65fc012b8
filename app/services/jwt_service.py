"""
JWT Service for worker identity tokens
"""
import jwt
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional

from app.core.config import settings
from atams.exceptions import UnauthorizedException

# Role name -> role level, same scale as the atams SSO role levels
ROLE_LEVELS = {
    "worker": 1,
    "manager": 50,
    "admin": 100,
}


class JwtService:
    def __init__(self) -> None:
        self.secret = settings.AUTH_JWT_SECRET
        self.algorithm = settings.AUTH_JWT_ALG
        self.issuer = settings.AUTH_JWT_ISSUER
        self.expire_minutes = settings.AUTH_TOKEN_EXPIRE_MINUTES

    def generate_token(
        self,
        user_id: int,
        company_id: str,
        role: str = "worker",
        expires_in: Optional[timedelta] = None
    ) -> str:
        """
        Issue a signed identity token

        Used by tooling and tests; login flows live outside this service.
        """
        if role not in ROLE_LEVELS:
            raise ValueError(f"Unknown role: {role}")

        now = datetime.now(timezone.utc)
        exp = now + (expires_in or timedelta(minutes=self.expire_minutes))
        payload = {
            "iss": self.issuer,
            "sub": str(user_id),
            "company_id": company_id,
            "role": role,
            "jti": str(uuid.uuid4()),
            "iat": int(now.timestamp()),
            "exp": int(exp.timestamp()),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify_token(self, token: str) -> Dict[str, Any]:
        """
        Verify a bearer token and return the identity it carries

        Returns:
            dict: {user_id, company_id, role, role_level}

        Raises:
            UnauthorizedException: If token is invalid or expired
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"require": ["iss", "sub", "exp"]}
            )
        except jwt.ExpiredSignatureError:
            raise UnauthorizedException("Token expired")
        except jwt.InvalidTokenError as e:
            raise UnauthorizedException(f"Invalid token: {str(e)}")

        for field in ("company_id", "role"):
            if not payload.get(field):
                raise UnauthorizedException(f"Missing required claim: {field}")

        role = payload["role"]
        if role not in ROLE_LEVELS:
            raise UnauthorizedException("Unknown role")

        try:
            user_id = int(payload["sub"])
        except (TypeError, ValueError):
            raise UnauthorizedException("Invalid subject")

        return {
            "user_id": user_id,
            "company_id": str(payload["company_id"]),
            "role": role,
            "role_level": ROLE_LEVELS[role],
        }
