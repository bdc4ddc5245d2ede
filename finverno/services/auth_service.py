from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
import structlog

from finverno.config import settings

logger = structlog.get_logger()

ROLES = ("admin", "contractor", "investor")

# ---------- JWT key loading ----------

_public_key: Optional[str] = None


def _load_public_key() -> str:
    global _public_key
    if _public_key is None:
        with open(settings.JWT_PUBLIC_KEY_PATH, "r") as f:
            _public_key = f.read()
    return _public_key


def _verification_key() -> str:
    if settings.JWT_ALGORITHM.startswith("HS"):
        if not settings.JWT_SECRET:
            raise JWTError("JWT_SECRET is not configured")
        return settings.JWT_SECRET
    if not settings.JWT_PUBLIC_KEY_PATH:
        raise JWTError("JWT_PUBLIC_KEY_PATH is not configured")
    return _load_public_key()


# ---------- token generation ----------

def create_access_token(
    user_id: str,
    role: str,
    email: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Mint an HS* token. The identity provider issues real ones; this serves dev and tests."""
    if not settings.JWT_ALGORITHM.startswith("HS"):
        raise RuntimeError("Local token minting requires an HS* JWT_ALGORITHM")
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    if email:
        claims["email"] = email
    if settings.JWT_AUDIENCE:
        claims["aud"] = settings.JWT_AUDIENCE
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


# ---------- token verification ----------

def decode_token(token: str) -> dict:
    """Decode and verify a JWT token. Raises JWTError on failure."""
    options = {"verify_aud": bool(settings.JWT_AUDIENCE)}
    return jwt.decode(
        token,
        _verification_key(),
        algorithms=[settings.JWT_ALGORITHM],
        audience=settings.JWT_AUDIENCE,
        options=options,
    )


def verify_access_token(token: str) -> dict:
    """Verify an access token and return its claims."""
    payload = decode_token(token)
    if not payload.get("sub"):
        raise JWTError("Token has no subject")
    if payload.get("role") not in ROLES:
        raise JWTError("Token has no recognised role")
    return payload
