"""
Seed script to populate default modules, permissions, the administrator role
and the administrators group.

Run this script to seed a database without starting the server (for example
with SEED_DEFAULTS=0). Set ADMIN_USERNAME, ADMIN_EMAIL and ADMIN_PASSWORD to
also create an administrator account.

Usage:
    python -m scripts.seed_permissions
"""
import asyncio

from app.core.database.engine import AsyncSessionLocal, init_db
from app.features.permissions.seed import ADMIN_GROUP, ADMIN_ROLE, DEFAULT_MODULES, seed_defaults
from app.features.permissions.store import EntityStore
from app.utils import get_logger


log = get_logger(__name__)


async def main():
    log.info("Initializing database tables...")
    await init_db()

    async with AsyncSessionLocal() as session:
        try:
            await seed_defaults(EntityStore(session))
        except Exception:
            log.error("Error seeding defaults", exc_info=True)
            await session.rollback()
            raise

    log.info("Seeding completed successfully!")
    log.info("Modules: %s", ", ".join(DEFAULT_MODULES))
    log.info("Role %r assigned to group %r", ADMIN_ROLE, ADMIN_GROUP)


if __name__ == "__main__":
    asyncio.run(main())
