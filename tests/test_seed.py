from app.features.modules.service import create_module_with_permissions
from app.features.permissions.models import Group, Role
from app.features.permissions.seed import ADMIN_GROUP, ADMIN_ROLE, DEFAULT_MODULES, seed_defaults
from app.features.permissions.store import GRANT, ROLE_ASSIGNMENT


async def _granted_modules(store, role_id):
    return sorted({permission.module_name for permission in await store.counterparts(GRANT, role_id)})


async def test_seed_grants_administrator_the_default_modules(store):
    await seed_defaults(store)

    role = await store.find_by(Role, name=ADMIN_ROLE)
    group = await store.find_by(Group, name=ADMIN_GROUP)
    assert await _granted_modules(store, role.id) == sorted(DEFAULT_MODULES)
    assert len(await store.counterparts(GRANT, role.id)) == 20
    assert [r.id for r in await store.counterparts(ROLE_ASSIGNMENT, group.id)] == [role.id]


async def test_reseeding_leaves_new_modules_ungranted(store):
    await seed_defaults(store)
    billing, _ = await create_module_with_permissions(store, "Billing")
    await store.commit()

    await seed_defaults(store)

    role = await store.find_by(Role, name=ADMIN_ROLE)
    assert "Billing" not in await _granted_modules(store, role.id)
    await store.delete_module(billing.id)


async def test_reseeding_keeps_revoked_relations_revoked(store):
    await seed_defaults(store)
    role = await store.find_by(Role, name=ADMIN_ROLE)
    group = await store.find_by(Group, name=ADMIN_GROUP)
    revoked = (await store.counterparts(GRANT, role.id))[0]
    await store.remove_pair(GRANT, role.id, revoked.id)
    await store.remove_pair(ROLE_ASSIGNMENT, group.id, role.id)
    await store.commit()

    await seed_defaults(store)

    assert revoked.id not in {permission.id for permission in await store.counterparts(GRANT, role.id)}
    assert await store.counterparts(ROLE_ASSIGNMENT, group.id) == []
