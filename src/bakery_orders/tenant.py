"""
Request-scoped tenant context.

Bakery staff (INTERNAL roles) see every company's orders; client-company
users are pinned to the company they are linked to.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from bakery_orders.errors import ForbiddenError
from bakery_orders.roles import RoleType
from bakery_orders.schemas import AuthenticatedUser

logger = logging.getLogger("orders.tenant")


@dataclass(frozen=True)
class TenantContext:
    user_id: int
    tenant_id: Optional[int] = None

    @property
    def is_internal(self) -> bool:
        return self.tenant_id is None

    @property
    def role_type(self) -> RoleType:
        return RoleType.INTERNAL if self.is_internal else RoleType.CLIENT

    def owns(self, company_id: int) -> bool:
        return self.is_internal or self.tenant_id == company_id


def resolve_tenant(user: AuthenticatedUser) -> TenantContext:
    if user.role.type == RoleType.INTERNAL:
        return TenantContext(user_id=user.id, tenant_id=None)

    company_id = user.company_id
    if not company_id or company_id < 0:
        logger.warning("[Orders] Client user %s has no company link", user.id)
        raise ForbiddenError("Client user has no company link")
    return TenantContext(user_id=user.id, tenant_id=company_id)
