"""
Seed the system roles, a default tenant and two accounts.

Usage:
    python -m socialize.db.seed
    python -m socialize.db.seed --create-tables --password secret123
"""
import argparse
import asyncio
from typing import Dict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from socialize.core.permissions import ADMIN_ROLE, DEFAULT_ROLE_PERMISSIONS, USER_ROLE
from socialize.core.security import hash_password
from socialize.db.base import Base, load_all_models
from socialize.db.models.role import Role
from socialize.db.models.tenant import Tenant
from socialize.db.models.user import User
from socialize.db.sessions import AsyncSessionLocal, engine
from socialize.utils.logger import get_logger, setup_logging

load_all_models()

logger = get_logger("db.seed")

DEFAULT_TENANT_DOMAIN = "default.socialize.local"

ROLE_DESCRIPTIONS = {
    ADMIN_ROLE: ("Administrator", "Full access to tenants, roles, platforms and content"),
    USER_ROLE: ("User", "Uploads and publishes content"),
}

ACCOUNTS = (
    ("Admin User", "admin@example.com", ADMIN_ROLE),
    ("Regular User", "user@example.com", USER_ROLE),
)


async def seed(session: AsyncSession, password: str = "password") -> Dict[str, int]:
    """Insert whatever is missing. Running it again changes nothing."""
    created = {"roles": 0, "tenants": 0, "users": 0}

    roles = {}
    for slug, permissions in DEFAULT_ROLE_PERMISSIONS.items():
        role = (await session.execute(select(Role).where(Role.slug == slug))).scalar_one_or_none()
        if not role:
            name, description = ROLE_DESCRIPTIONS[slug]
            role = Role(name=name, slug=slug, description=description, permissions=dict(permissions))
            session.add(role)
            created["roles"] += 1
        roles[slug] = role

    tenant = (await session.execute(
        select(Tenant).where(Tenant.domain == DEFAULT_TENANT_DOMAIN)
    )).scalar_one_or_none()
    if not tenant:
        tenant = Tenant(name="Default Tenant", domain=DEFAULT_TENANT_DOMAIN, settings={}, is_active=True)
        session.add(tenant)
        created["tenants"] += 1

    await session.flush()

    for name, email, slug in ACCOUNTS:
        user = (await session.execute(
            select(User).options(selectinload(User.roles)).where(User.email == email)
        )).scalar_one_or_none()
        if user:
            continue
        user = User(tenant_id=tenant.id, name=name, email=email, hashed_password=hash_password(password))
        user.roles = [roles[slug]]
        session.add(user)
        created["users"] += 1

    await session.commit()
    return created


async def main(create_tables: bool, password: str) -> None:
    if create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Created tables")

    async with AsyncSessionLocal() as session:
        created = await seed(session, password=password)
    logger.info(f"Seeding done: {created}")
    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed roles, the default tenant and demo accounts")
    parser.add_argument("--create-tables", action="store_true", help="create tables without running migrations")
    parser.add_argument("--password", default="password", help="password for the seeded accounts")
    args = parser.parse_args()

    setup_logging(level="INFO")
    asyncio.run(main(args.create_tables, args.password))
