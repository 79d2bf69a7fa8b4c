"""Bearer-token authentication for the storefront API.

Tokens are HS256 JWTs issued by the accounts service: ``sub`` carries the user
id and ``is_admin`` gates the back-office routes.
"""

from datetime import UTC, datetime, timedelta

import jwt
import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from shared.config import Settings, get_settings
from shared.exceptions import AuthenticationError, PermissionDenied

logger = structlog.get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class Principal(BaseModel):
    user_id: str
    is_admin: bool = False

    model_config = {"frozen": True}


def create_access_token(
    user_id: str,
    is_admin: bool = False,
    expires_delta: timedelta | None = None,
    settings: Settings | None = None,
) -> str:
    settings = settings or get_settings()
    expire = datetime.now(UTC) + (expires_delta or timedelta(minutes=settings.token_ttl_minutes))
    payload = {"sub": user_id, "is_admin": is_admin, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings | None = None) -> Principal:
    settings = settings or get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError({"token": ["Token expired"]}) from None
    except jwt.InvalidTokenError as exc:
        logger.info("Rejected bearer token", reason=str(exc))
        raise AuthenticationError({"token": ["Invalid authentication"]}) from None

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError({"token": ["Invalid token"]})
    return Principal(user_id=str(user_id), is_admin=bool(payload.get("is_admin", False)))


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Principal:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError({"token": ["Not authorized, no token"]})
    return decode_access_token(credentials.credentials)


def get_current_admin(user: Principal = Depends(get_current_user)) -> Principal:
    if not user.is_admin:
        raise PermissionDenied({"user": ["Admin access required"]})
    return user
