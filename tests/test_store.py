import pytest

from app.core.errors import Conflict, DependencyInUse, NotFound
from app.features.modules.service import create_module_with_permissions
from app.features.permissions.models import Group, Module, Permission, Role
from app.features.permissions.store import GRANT, MEMBERSHIP
from app.features.users.models import User


async def test_duplicate_name_is_a_conflict(store):
    await store.create(Group, name="Finance")

    with pytest.raises(Conflict, match="Group name already exists"):
        await store.create(Group, conflict_message="Group name already exists", name="Finance")

    # the failed insert must not poison the transaction
    await store.create(Group, name="Audit")
    await store.commit()
    assert [group.name for group in await store.list_all(Group, Group.name)] == ["Audit", "Finance"]


async def test_permission_identity_is_module_and_action(store):
    module, _ = await create_module_with_permissions(store, "Billing")

    with pytest.raises(Conflict):
        await store.create(Permission, action="read", module_id=module.id, description="another label")


async def test_pair_with_unknown_entity_is_not_found(store):
    group = await store.create(Group, name="Finance")

    with pytest.raises(NotFound):
        await store.add_pair(MEMBERSHIP, group.id, 999)


async def test_add_pair_reports_existing_pair(store):
    group = await store.create(Group, name="Finance")
    user = await store.create(User, username="ann", email="ann@example.com", password_hash="x")

    assert await store.add_pair(MEMBERSHIP, group.id, user.id) is True
    assert await store.add_pair(MEMBERSHIP, group.id, user.id) is False
    assert await store.pair_counts(MEMBERSHIP) == {group.id: 1}


async def test_get_missing_entity(store):
    with pytest.raises(NotFound, match="Role not found"):
        await store.get(Role, 1)
    with pytest.raises(NotFound):
        await store.delete(Role, 1)


async def test_module_delete_is_refused_while_granted(store):
    module, permissions = await create_module_with_permissions(store, "Billing")
    role = await store.create(Role, name="Auditor")
    await store.add_pair(GRANT, role.id, permissions[0].id)
    await store.commit()

    with pytest.raises(DependencyInUse) as excinfo:
        await store.delete_module(module.id)
    assert excinfo.value.status_code == 409

    await store.remove_pair(GRANT, role.id, permissions[0].id)
    await store.delete_module(module.id)
    await store.commit()

    assert await store.find(Module, module.id) is None
    assert await store.list_all(Permission) == []


async def test_delete_missing_module(store):
    with pytest.raises(NotFound, match="Module not found"):
        await store.delete_module(42)


async def test_module_rename_keeps_permissions(store):
    module, permissions = await create_module_with_permissions(store, "Billing")
    ids = sorted(permission.id for permission in permissions)

    await store.update(module, name="Invoicing")
    await store.commit()

    renamed = await store.module_permissions(module.id)
    assert sorted(permission.id for permission in renamed) == ids
    assert {permission.module_name for permission in renamed} == {"Invoicing"}


async def test_module_without_default_permissions(store):
    module, permissions = await create_module_with_permissions(store, "Reports", with_default_permissions=False)

    assert permissions == []
    assert await store.module_permission_counts() == {}
    assert module.name == "Reports"


async def test_rename_to_taken_name_is_a_conflict(store):
    await store.create(Role, name="Auditor")
    clerk = await store.create(Role, name="Clerk")

    with pytest.raises(Conflict, match="Role name already exists"):
        await store.update(clerk, conflict_message="Role name already exists", name="Auditor")
