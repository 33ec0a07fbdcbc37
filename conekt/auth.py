"""
Bearer-token authentication.

Identity is owned by an external auth provider that issues HS256 JWTs with
the user id in ``sub``. This module only verifies tokens and resolves them
to a UserPrincipal.
"""

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional, cast

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from jwt import PyJWTError
from sqlalchemy.orm import Session

from .core.config import settings
from .core.exceptions import UnauthorizedException
from .database import get_db
from .principal import UserPrincipal
from .repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _secret_value(secret_obj: Any) -> str:
    getter = getattr(secret_obj, "get_secret_value", None)
    if callable(getter):
        return cast(str, getter())
    return cast(str, secret_obj)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode an access token, enforcing the audience when one is configured."""
    secret = _secret_value(settings.secret_key)
    if settings.token_audience:
        payload_raw = jwt.decode(
            token,
            secret,
            algorithms=[settings.algorithm],
            audience=settings.token_audience,
        )
    else:
        payload_raw = jwt.decode(
            token,
            secret,
            algorithms=[settings.algorithm],
            options={"verify_aud": False},
        )
    return cast(Dict[str, Any], payload_raw)


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create an access token for a user.

    Tokens are normally minted by the auth provider; this is used by tooling
    and tests.
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode: Dict[str, Any] = {"sub": user_id, "exp": expire}
    if settings.token_audience:
        to_encode["aud"] = settings.token_audience
    return cast(
        str,
        jwt.encode(to_encode, _secret_value(settings.secret_key), algorithm=settings.algorithm),
    )


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> UserPrincipal:
    """
    Dependency resolving the bearer token to the authenticated principal.

    Raises:
        UnauthorizedException: Missing, invalid or expired token, or unknown user
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedException()

    try:
        payload = decode_access_token(credentials.credentials)
    except PyJWTError as e:
        logger.info(f"Rejected access token: {e}")
        raise UnauthorizedException("Could not validate credentials")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedException("Could not validate credentials")

    user = UserRepository(db).get_by_id(str(user_id))
    if user is None or not user.is_active:
        logger.warning(f"Token subject {user_id} is not an active user")
        raise UnauthorizedException("Could not validate credentials")

    return UserPrincipal(user_id=user.id, role=user.role)
