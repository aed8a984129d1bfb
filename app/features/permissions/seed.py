"""
Default access-control data.

Creates the modules guarding the management API (each with its four CRUD
permissions), an ``Administrator`` role granted the permissions of those
modules, and an ``Administrators`` group holding that role. When ``ADMIN_USERNAME``,
``ADMIN_EMAIL`` and ``ADMIN_PASSWORD`` are all set, that user is created and
made a member of the group.

Safe to run repeatedly: anything that already exists is left alone, including
its relations. Grants, role assignments and memberships are only written
alongside the entity that the seed itself creates.
"""
from sqlalchemy import select

from app.core import config
from app.features.modules.service import create_module_with_permissions
from app.features.permissions.models import Group, Module, Permission, Role
from app.features.permissions.store import GRANT, MEMBERSHIP, ROLE_ASSIGNMENT, EntityStore
from app.features.users.auth import hash_password
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


DEFAULT_MODULES = {
    "Users": "User accounts",
    "Groups": "Groups of users",
    "Roles": "Named sets of permissions",
    "Modules": "Resource domains permissions are scoped to",
    "Permissions": "Actions allowed on a module",
}

ADMIN_ROLE = "Administrator"
ADMIN_GROUP = "Administrators"


async def seed_modules(store: EntityStore) -> int:
    created = 0
    for name, description in DEFAULT_MODULES.items():
        if await store.find_by(Module, name=name) is not None:
            log.debug("Module %r already exists, skipping", name)
            continue
        await create_module_with_permissions(store, name, description)
        created += 1
    return created


async def seed_admin_role(store: EntityStore) -> Role:
    """
    Create the administrator role and grant it the permissions of the default
    modules. An existing role is returned untouched, so grants revoked since
    and modules added since stay as they are.
    """
    role = await store.find_by(Role, name=ADMIN_ROLE)
    if role is not None:
        log.debug("Role %r already exists, skipping", ADMIN_ROLE)
        return role
    role = await store.create(Role, name=ADMIN_ROLE, description="Full access to the management API")
    stmt = (
        select(Permission.id)
        .join(Module, Module.id == Permission.module_id)
        .where(Module.name.in_(list(DEFAULT_MODULES)))
        .order_by(Permission.id)
    )
    permission_ids = [permission_id for (permission_id,) in await store.fetch_all(stmt)]
    for permission_id in permission_ids:
        await store.add_pair(GRANT, role.id, permission_id)
    log.info("Role %r created with %d permissions", ADMIN_ROLE, len(permission_ids))
    return role


async def seed_admin_group(store: EntityStore, role: Role) -> Group:
    group = await store.find_by(Group, name=ADMIN_GROUP)
    if group is not None:
        return group
    group = await store.create(Group, name=ADMIN_GROUP, description="Administrators")
    await store.add_pair(ROLE_ASSIGNMENT, group.id, role.id)
    return group


async def seed_admin_user(store: EntityStore, group: Group) -> User | None:
    if not (config.ADMIN_USERNAME and config.ADMIN_EMAIL and config.ADMIN_PASSWORD):
        return None
    user = await store.find_by(User, email=config.ADMIN_EMAIL)
    if user is not None:
        return user
    user = await store.create(
        User,
        username=config.ADMIN_USERNAME,
        email=config.ADMIN_EMAIL,
        password_hash=hash_password(config.ADMIN_PASSWORD),
    )
    await store.add_pair(MEMBERSHIP, group.id, user.id)
    log.info("Created admin user %r", config.ADMIN_USERNAME)
    return user


async def seed_defaults(store: EntityStore) -> None:
    """Seed everything and commit."""
    created = await seed_modules(store)
    role = await seed_admin_role(store)
    group = await seed_admin_group(store, role)
    await seed_admin_user(store, group)
    await store.commit()
    log.info("Seeded defaults (%d new modules)", created)
