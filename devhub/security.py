"""
Password hashing and access-token handling.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from devhub.errors import UnauthorizedError

# pbkdf2_sha256 avoids the native bcrypt dependency.
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


class TokenCodec:
    def __init__(self, secret: str, algorithm: str = "HS256", expire_minutes: int = 60):
        self.secret = secret
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def encode(self, user_id: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=self.expire_minutes)
        )
        return jwt.encode(
            {"sub": user_id, "role": role, "exp": expire},
            self.secret,
            algorithm=self.algorithm,
        )

    def decode_subject(self, token: str) -> str:
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except ExpiredSignatureError as exc:
            raise UnauthorizedError("Token has expired. Please login again.") from exc
        except JWTError as exc:
            raise UnauthorizedError(
                "Invalid token. Please provide a valid JWT token."
            ) from exc
        subject = payload.get("sub")
        if not subject:
            raise UnauthorizedError("Invalid token. Missing subject (sub).")
        return subject
