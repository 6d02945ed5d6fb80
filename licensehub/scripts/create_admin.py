"""
One-time bootstrap script — creates the SUPERADMINISTRATOR account.

Usage:
    uv run python -m licensehub.scripts.create_admin

You only need this ONCE. Run `alembic upgrade head` first.  Other
accounts register themselves; admins are promoted via
PATCH /api/admin/users/{id}/role.
"""

import asyncio
import getpass

from licensehub.core.config import settings
from licensehub.core.database import create_engine, create_session_factory, transaction
from licensehub.core.exceptions import KernelError
from licensehub.core.security import BcryptPasswordHasher
from licensehub.models.user import User, UserRole, UserStatus
from licensehub.services.credential_service import check_password_strength, get_user_by_email
from licensehub.services.member_service import normalize_email


async def create_admin() -> None:
    engine = create_engine(settings.DATABASE_URL)
    session_factory = create_session_factory(engine)
    hasher = BcryptPasswordHasher(settings.BCRYPT_ROUNDS)

    # ── Collect input ────────────────────────────────────────────────
    print(f"\n🔧  {settings.APP_NAME} — Superadministrator Setup\n")
    email = input("  Email:     ").strip() or settings.SUPERADMIN_EMAIL
    full_name = input("  Full name: ").strip()
    password = getpass.getpass("  Password:  ")
    confirm = getpass.getpass("  Confirm:   ")

    if password != confirm:
        print("\n❌  Passwords do not match.")
        await engine.dispose()
        return

    try:
        email = normalize_email(email)
        check_password_strength(password)
        async with transaction(session_factory) as db:
            if await get_user_by_email(email, db) is not None:
                print(f"\n❌  User with email '{email}' already exists.")
                return
            user = User(
                email=email,
                password_hash=hasher.hash(password),
                full_name=full_name,
                role=UserRole.SUPERADMINISTRATOR,
                status=UserStatus.ACTIVE,
            )
            db.add(user)
            await db.flush()
            user_id = user.id
    except KernelError as exc:
        print(f"\n❌  {exc.message}")
        return
    finally:
        await engine.dispose()

    print("\n✅  Superadministrator created successfully!")
    print(f"    ID:    {user_id}")
    print(f"    Email: {email}")
    print("\n   You can now log in via POST /api/auth/login\n")


if __name__ == "__main__":
    asyncio.run(create_admin())
