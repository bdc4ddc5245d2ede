from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
import structlog

from finverno.errors import AuthenticationError
from finverno.services.auth_service import verify_access_token

logger = structlog.get_logger()

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """FastAPI dependency: extract and verify JWT, return user claims dict."""
    if credentials is None:
        raise AuthenticationError("Authentication required")
    try:
        payload = verify_access_token(credentials.credentials)
    except JWTError as e:
        logger.warning("auth_token_invalid", error=str(e))
        raise AuthenticationError()
    user = {
        "user_id": payload["sub"],
        "role": payload["role"],
        "email": payload.get("email"),
    }
    structlog.contextvars.bind_contextvars(user_id=user["user_id"], role=user["role"])
    return user
