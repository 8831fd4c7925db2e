from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from libs.auth.models import AuthUser
from libs.common.config import get_settings

settings = get_settings()
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def decode_token(token: str) -> AuthUser:
    """Verify an HS256 access token and map its claims onto AuthUser."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_aud": False},
        )
        return AuthUser(**payload)
    except (JWTError, ValidationError):
        raise credentials_exception


async def get_current_user(
    token: Annotated[HTTPAuthorizationCredentials, Depends(security)]
) -> AuthUser:
    """
    Validate the bearer token and return the authenticated user.
    """
    return decode_token(token.credentials)


async def get_optional_user(
    token: Annotated[
        Optional[HTTPAuthorizationCredentials], Depends(optional_security)
    ]
) -> Optional[AuthUser]:
    """
    Like get_current_user, but anonymous callers get None instead of a 401.
    A token that is present but invalid is still rejected.
    """
    if token is None:
        return None
    return decode_token(token.credentials)


async def require_admin(
    current_user: Annotated[AuthUser, Depends(get_current_user)]
) -> AuthUser:
    """
    Ensure the caller carries the operator role.
    """
    if current_user.role != settings.ADMIN_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user
