from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from passlib.context import CryptContext

from config import Settings
from errors import unauthorized
from schemas import TokenClaims


class PasswordHasher:
    def __init__(self, rounds: int = 12):
        self._context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, plain: str, hashed: str) -> bool:
        if not hashed:
            return False
        try:
            return self._context.verify(plain, hashed)
        except ValueError:
            # not a bcrypt hash
            return False


class TokenCodec:
    """Signs and checks HS256 bearer tokens with the configured secret."""

    def __init__(self, settings: Settings):
        self.secret = settings.jwt_secret
        self.algorithm = settings.jwt_algorithm
        self.ttl = timedelta(hours=settings.token_ttl_hours)

    def encode(self, user_id: str, email: str, role: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "userID": user_id,
            "email": email,
            "role": role,
            "iat": now,
            "nbf": now,
            "exp": now + self.ttl,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "userID"]},
            )
        except jwt.ExpiredSignatureError:
            raise unauthorized("invalid or expired token: token expired")
        except jwt.InvalidTokenError as e:
            raise unauthorized(f"invalid or expired token: {e}")
        return payload

    def claims(self, token: str) -> TokenClaims:
        payload = self.decode(token)
        return TokenClaims(user_id=payload["userID"], email=payload.get("email", ""), role=payload.get("role", ""))
