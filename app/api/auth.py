import hmac
import logging
from fastapi import APIRouter, HTTPException, status
from app.config import settings
from app.models.schemas import TokenRequest, TokenResponse
from app.security import create_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/token", response_model=TokenResponse)
async def issue_token(body: TokenRequest):
    """Exchange the admin credentials from the environment for a bearer token."""
    if not settings.ADMIN_PASSWORD:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Login is disabled")

    valid_user = hmac.compare_digest(body.username.encode(), settings.ADMIN_USERNAME.encode())
    valid_password = hmac.compare_digest(body.password.encode(), settings.ADMIN_PASSWORD.encode())
    if not (valid_user and valid_password):
        logger.warning("Failed login for %r", body.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return TokenResponse(
        access_token=create_access_token(body.username),
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
