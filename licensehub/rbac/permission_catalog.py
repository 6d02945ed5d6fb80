"""
Permission vocabulary.

The closed set of capability codes a subscriber can grant to roster
members.  `PermissionRegistry` refuses any code not listed here, and the
`require_permission` dependency only accepts codes from this list.

Subscribers implicitly hold every code for their own subscription;
members hold only what they have been granted.
"""

# ────────────────────────────────────────────────────────────────────
# CANONICAL PERMISSION LIST
# ────────────────────────────────────────────────────────────────────
PERMISSIONS: list[dict[str, str]] = [
    # Warehouse
    {"code": "warehouse.create", "description": "Create a warehouse"},
    {"code": "warehouse.edit", "description": "Update warehouse details"},
    {"code": "warehouse.view", "description": "View warehouses"},
    {"code": "warehouse.delete", "description": "Delete a warehouse"},
    # Inventory
    {"code": "inventory.inward.create", "description": "Create inward inventory entries"},
    {"code": "inventory.move.internal", "description": "Move inventory between zones"},
    {"code": "inventory.dispatch.execute", "description": "Execute dispatch of inventory"},
    {"code": "inventory.view", "description": "View inventory data"},
]

PERMISSION_CODES: frozenset[str] = frozenset(p["code"] for p in PERMISSIONS)


def is_known(code: object) -> bool:
    return isinstance(code, str) and code in PERMISSION_CODES


def first_unknown(codes) -> str | None:
    """Return the first code not in the vocabulary, or None if all are known."""
    for code in codes:
        if not is_known(code):
            return code
    return None
