"""
Bearer-token authentication and route-level permission checks.

Tokens are HS256 JWTs issued by the identity service. Claims used here:
    sub         user id
    email, name
    role        role code (RoleCode)
    company_id  client company of CLIENT users
"""
import logging

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from bakery_orders.config import settings
from bakery_orders.roles import build_permission_table, permissions_for, role_type
from bakery_orders.schemas import AuthenticatedUser, RoleClaim
from bakery_orders.tenant import TenantContext, resolve_tenant

logger = logging.getLogger("orders.auth")

security = HTTPBearer()


def decode_token(token: str) -> AuthenticatedUser:
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        code = claims["role"]
        return AuthenticatedUser(
            id=int(claims["sub"]),
            email=claims.get("email", ""),
            name=claims.get("name", ""),
            role=RoleClaim(code=code, type=role_type(code)),
            company_id=claims.get("company_id"),
        )
    except (JWTError, KeyError, ValueError, ValidationError) as e:
        logger.info("[Orders] Rejected token: %s", e)
        raise HTTPException(status_code=401, detail="Invalid or expired token")


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> AuthenticatedUser:
    return decode_token(credentials.credentials)


async def get_tenant(
    user: AuthenticatedUser = Depends(get_current_user)
) -> TenantContext:
    return resolve_tenant(user)


def get_permission_table(request: Request):
    table = getattr(request.app.state, "permission_table", None)
    if table is None:
        table = build_permission_table(settings.ROLE_PERMISSIONS)
        request.app.state.permission_table = table
    return table


def require_permission(permission: str):
    """
    Dependency factory: the current user's role must grant `permission`.
    """
    async def checker(
        user: AuthenticatedUser = Depends(get_current_user),
        table=Depends(get_permission_table),
    ) -> AuthenticatedUser:
        if permission not in permissions_for(user.role.code, table):
            logger.warning("[Orders] User %s (%s) lacks permission %s",
                           user.id, user.role.code.value, permission)
            raise HTTPException(status_code=403, detail=f"Missing permission {permission}")
        return user
    return checker
