"""Password hashing and access tokens."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from mediashelf.config import settings
from mediashelf.errors import AuthenticationError

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(user_id: str, role: str, expires_minutes: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=expires_minutes or settings.access_token_expire_minutes)
    claims = {
        "sub": user_id,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": expire,
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise AuthenticationError("Invalid or expired token. Please log in again.")
    if not payload.get("sub"):
        raise AuthenticationError("Invalid token. Please log in again.")
    return payload


def issued_before(payload: dict, moment: Optional[datetime]) -> bool:
    """True when the token was issued before ``moment`` (whole seconds)."""
    if moment is None:
        return False
    if moment.tzinfo is None:
        # SQLite hands back naive datetimes
        moment = moment.replace(tzinfo=timezone.utc)
    return int(payload.get("iat", 0)) < int(moment.timestamp())
