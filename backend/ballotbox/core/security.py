"""
Credentials: account password hashes, account JWTs and participant tokens.

Account holders (admins, sub-admins, users) authenticate with a bearer JWT.
Non-user participants never get a JWT; they present the opaque token minted
by generate_participant_token.
"""
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import jwt, JWTError
from passlib.context import CryptContext
from .config import settings

ACCESS_TOKEN_TYPE = "access"

# pbkdf2_sha256 for new hashes, bcrypt still verifies imported ones
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")

# Verified against when no account matches an email, so both failures cost one hash
DUMMY_PASSWORD_HASH = pwd_context.hash(secrets.token_urlsafe(16))


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def generate_participant_token() -> str:
    """Opaque, unguessable token handed to non-user participants."""
    return secrets.token_urlsafe(settings.PARTICIPANT_TOKEN_BYTES)


def create_access_token(
    subject: str,
    role: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Sign an account JWT; role is informational, permissions are always re-resolved."""
    issued_at = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {
        "sub": str(subject),
        "iat": issued_at,
        "exp": issued_at + lifetime,
        "type": ACCESS_TOKEN_TYPE,
    }
    if role:
        claims["role"] = role
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_token(token: str) -> Optional[str]:
    """User id of a valid, unexpired account JWT, else None."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != ACCESS_TOKEN_TYPE:
        return None
    return payload.get("sub")
