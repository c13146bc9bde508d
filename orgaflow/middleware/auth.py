from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
import structlog

from orgaflow.schemas.common import error_body
from orgaflow.services.auth_service import verify_access_token

logger = structlog.get_logger()

security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """FastAPI dependency: extract and verify JWT, return user claims dict."""
    token = credentials.credentials
    try:
        payload = verify_access_token(token)
        structlog.contextvars.bind_contextvars(user_id=payload["sub"])
        return {
            "user_id": payload["sub"],
            "role": payload["role"],
            "name": payload.get("name") or payload.get("email") or payload["sub"],
            "email": payload.get("email"),
        }
    except (JWTError, KeyError) as e:
        logger.warning("auth_token_invalid", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_body("AUTH_TOKEN_INVALID", "Invalid or expired token"),
            headers={"WWW-Authenticate": "Bearer"},
        )
