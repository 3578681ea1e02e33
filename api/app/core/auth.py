"""Authentication utilities: password hashing and JWT token management."""

from datetime import UTC, datetime, timedelta

from jose import jwt
from passlib.context import CryptContext

from app.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS = "access"
REFRESH = "refresh"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def _encode(subject: str, token_type: str, lifetime: timedelta, extra: dict | None = None) -> str:
    payload = {"sub": subject, "exp": datetime.now(UTC) + lifetime, "type": token_type}
    if extra:
        payload.update(extra)
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(subject: str, role: str | None = None) -> str:
    """Short-lived bearer token. The role claim is informational; it is re-read from the DB per request."""
    extra = {"role": role} if role else None
    return _encode(subject, ACCESS, timedelta(minutes=settings.access_token_expire_minutes), extra)


def create_refresh_token(subject: str) -> str:
    return _encode(subject, REFRESH, timedelta(days=settings.refresh_token_expire_days))


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Raises JWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
