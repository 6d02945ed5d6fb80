"""
RBAC dependencies — authentication & authorization for routes.

`get_current_principal` authenticates the bearer token against the
session registry on every request (stateless token + stateful session).

`require_role` gates admin surfaces by account role.

`require_permission` is a *dependency factory*: call it with one or
more permission codes and it returns a FastAPI dependency that will:

1. Authenticate the caller.
2. Resolve their subscription scope (own license or roster membership).
3. Verify the required code(s) are granted in that scope.
4. Return 403 on failure, with NO details about which codes are
   missing (prevents enumeration).

Usage in a route:
    @router.get("/warehouses")
    async def list_items(scope: SubscriptionScope = Depends(require_permission("warehouse.view"))): ...
"""

import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from licensehub.kernel import Kernel
from licensehub.models.user import UserRole
from licensehub.rbac.context_resolver import resolve_subscription_scope
from licensehub.rbac.permission_catalog import is_known
from licensehub.snapshots import Principal, SubscriptionScope

logger = logging.getLogger("rbac")

bearer_scheme = HTTPBearer(auto_error=False)


def get_kernel(request: Request) -> Kernel:
    return request.app.state.kernel


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    kernel: Kernel = Depends(get_kernel),
) -> Principal:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token missing",
            headers={"WWW-Authenticate": "Bearer"},
        )
    # TokenInvalid / SessionExpired / AccountDisabled propagate to the
    # kernel error handler.
    return await kernel.auth.authenticate(credentials.credentials)


class require_role:
    """
    Dependency factory.

    Can be used as:
        Depends(require_role(UserRole.ADMIN, UserRole.SUPERADMINISTRATOR))
    """

    def __init__(self, *roles: UserRole):
        self.roles = set(roles)

    async def __call__(self, principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in self.roles:
            logger.warning("Role denied for user %s (%s)", principal.user_id, principal.role.value)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return principal


require_admin = require_role(UserRole.ADMIN, UserRole.SUPERADMINISTRATOR)
require_superadmin = require_role(UserRole.SUPERADMINISTRATOR)


class require_permission:
    """
    Dependency factory.

    Can be used as:
        Depends(require_permission("warehouse.view"))
        Depends(require_permission("warehouse.create", "warehouse.edit"))
    """

    def __init__(self, *permission_codes: str):
        for code in permission_codes:
            if not is_known(code):
                raise ValueError(f"Unknown permission code: {code}")
        self.required_codes = set(permission_codes)

    async def __call__(
        self,
        principal: Principal = Depends(get_current_principal),
        kernel: Kernel = Depends(get_kernel),
    ) -> SubscriptionScope:
        scope = await resolve_subscription_scope(
            principal.user_id,
            ledger=kernel.ledger,
            roster=kernel.roster,
            permissions=kernel.permissions,
        )
        if not self.required_codes.issubset(scope.permissions):
            logger.warning(
                "Permission denied for user %s under %s, required: %s",
                principal.user_id,
                scope.subscriber_id,
                sorted(self.required_codes),
            )
            # Intentionally vague: do NOT reveal which codes are missing
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return scope
