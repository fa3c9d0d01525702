"""
API dependencies for FastAPI dependency injection.

Identity comes entirely from the bearer token: the token's `sub` and `role`
claims become an Actor. No user lookup happens on the request path.
"""
from typing import Optional
from uuid import UUID

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from salonbook.api.middleware.error_handler import ForbiddenException, UnauthorizedException
from salonbook.lib.db import get_db as get_db_session
from salonbook.lib.jwt import verify_token
from salonbook.lib.request_context import Actor
from salonbook.models.users import UserRole


# Re-export get_db for convenience
get_db = get_db_session


# HTTP Bearer token security scheme (missing header handled below as 401)
security = HTTPBearer(auto_error=False)


def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Actor:
    """
    Dependency to get the authenticated caller from the JWT.

    Raises:
        UnauthorizedException: 401 if the token is missing, invalid or expired
    """
    if credentials is None:
        raise UnauthorizedException("Access token required")

    try:
        payload = verify_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise UnauthorizedException("Token expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedException("Invalid authentication token")

    try:
        return Actor(user_id=UUID(str(payload["sub"])), role=UserRole(payload["role"]))
    except (KeyError, ValueError):
        raise UnauthorizedException("Invalid authentication token")


def require_roles(*roles: UserRole):
    """
    Dependency factory restricting a route to the given roles.

    Example:
        @router.post("", dependencies=[Depends(require_roles(UserRole.CUSTOMER))])
    """
    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise ForbiddenException(
                f"{' or '.join(r.value.title() for r in roles)} access required"
            )
        return actor
    return dependency


require_customer = require_roles(UserRole.CUSTOMER)
require_owner = require_roles(UserRole.OWNER, UserRole.ADMIN)


async def get_raw_body(request: Request) -> bytes:
    """Unparsed request body, needed for webhook signature checks."""
    return await request.body()
