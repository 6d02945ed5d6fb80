"""
Context resolver — subscription-scope enforcement.

Decides on whose subscription a caller acts and which permission codes
they hold there:

- Subscriber with a valid license of their own → owner scope, every code.
- Active roster member whose subscriber's license is valid → that
  subscriber's scope, only the codes they have been granted.
- Anyone else → LicenseExpired.

Usage in a route (via `require_permission`):
    scope = await resolve_subscription_scope(
        principal.user_id, ledger=kernel.ledger, roster=kernel.roster, permissions=kernel.permissions
    )
    if not scope.allows("warehouse.create"): ...
"""

import uuid

from licensehub.core.exceptions import LicenseExpired
from licensehub.rbac.permission_catalog import PERMISSION_CODES
from licensehub.services.license_service import LicenseLedger
from licensehub.services.member_service import MemberRoster
from licensehub.services.permission_service import PermissionRegistry
from licensehub.snapshots import SubscriptionScope


async def resolve_subscription_scope(
    user_id: uuid.UUID,
    *,
    ledger: LicenseLedger,
    roster: MemberRoster,
    permissions: PermissionRegistry,
) -> SubscriptionScope:
    if await ledger.is_valid(user_id):
        return SubscriptionScope(subscriber_id=user_id, is_owner=True, permissions=PERMISSION_CODES)

    subscriber_id = await roster.find_subscriber(user_id)
    if subscriber_id is None:
        raise LicenseExpired("No active subscription")

    # Raises LicenseExpired when the subscriber's license has lapsed.
    await ledger.require_valid(subscriber_id)
    granted = await permissions.get_for_member(subscriber_id, user_id)
    return SubscriptionScope(subscriber_id=subscriber_id, is_owner=False, permissions=frozenset(granted))
