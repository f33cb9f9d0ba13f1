import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from accounts.core.config import settings
from accounts.core.errors import TokenExpiredError, TokenInvalidError

# CryptContext handles password hashing using bcrypt
# bcrypt embeds a per-call random salt and the cost factor in the hash string
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)

# Number of random bytes in a password reset token (hex encoded to twice as many chars)
RESET_TOKEN_BYTES = 40


@dataclass(frozen=True)
class TokenPayload:
    subject: str
    issued_at: float  # epoch seconds with sub-second precision ('iat' claim)


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """Verify a password against a hash using constant-time comparison"""
    if not plain_password or not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # Not a hash passlib recognises - treat as a mismatch
        return False


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt"""
    return pwd_context.hash(password)


def create_access_token(subject: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed JWT carrying the subject id, issue time and expiry"""
    now = datetime.now(timezone.utc)
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": str(subject),
        # Float seconds - compared against password_changed_at at sub-second precision
        "iat": now.timestamp(),
        "exp": now + expires_delta,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> TokenPayload:
    """
    Decode and verify a JWT token.

    Raises TokenExpiredError once the token is past 'exp' and
    TokenInvalidError for a bad signature, malformed token or missing claims.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY,
                             algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenExpiredError("Token has expired") from exc
    except JWTError as exc:
        raise TokenInvalidError("Token is invalid") from exc

    subject = payload.get("sub")
    issued_at = payload.get("iat")
    if not subject or not isinstance(issued_at, (int, float)):
        raise TokenInvalidError("Token is missing required claims")

    return TokenPayload(subject=str(subject), issued_at=float(issued_at))


def generate_reset_token() -> tuple[str, str]:
    """Return (raw_token, hashed_token) - only the hash is stored"""
    raw_token = secrets.token_hex(RESET_TOKEN_BYTES)
    return raw_token, hash_reset_token(raw_token)


def hash_reset_token(raw_token: str) -> str:
    """sha256 hex digest used to look up reset tokens (not the password hash)"""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()
