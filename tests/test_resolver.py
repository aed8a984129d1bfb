import pytest_asyncio

from app.features.modules.service import create_module_with_permissions
from app.features.permissions.models import Action, Group, Permission, Role
from app.features.permissions.resolver import AuthorizationResolver
from app.features.permissions.store import GRANT, MEMBERSHIP, ROLE_ASSIGNMENT
from app.features.users.models import User


async def _user(store, username):
    return await store.create(User, username=username, email=f"{username}@example.com", password_hash="x")


def _permission(permissions: list[Permission], action: Action) -> Permission:
    return next(permission for permission in permissions if permission.action == action.value)


@pytest_asyncio.fixture
async def graph(store):
    """
    alice: Finance (Clerk, Auditor) and Audit (Auditor)
    bob: no groups
    Clerk grants Billing read/update, Auditor grants Billing read and Reports read.
    """
    _, billing = await create_module_with_permissions(store, "Billing")
    _, reports = await create_module_with_permissions(store, "Reports")
    clerk = await store.create(Role, name="Clerk")
    auditor = await store.create(Role, name="Auditor")
    finance = await store.create(Group, name="Finance")
    audit = await store.create(Group, name="Audit")
    alice = await _user(store, "alice")
    bob = await _user(store, "bob")

    await store.add_pair(GRANT, clerk.id, _permission(billing, Action.READ).id)
    await store.add_pair(GRANT, clerk.id, _permission(billing, Action.UPDATE).id)
    await store.add_pair(GRANT, auditor.id, _permission(billing, Action.READ).id)
    await store.add_pair(GRANT, auditor.id, _permission(reports, Action.READ).id)
    await store.add_pair(ROLE_ASSIGNMENT, finance.id, clerk.id)
    await store.add_pair(ROLE_ASSIGNMENT, finance.id, auditor.id)
    await store.add_pair(ROLE_ASSIGNMENT, audit.id, auditor.id)
    await store.add_pair(MEMBERSHIP, finance.id, alice.id)
    await store.add_pair(MEMBERSHIP, audit.id, alice.id)
    await store.commit()
    return {
        "alice": alice,
        "bob": bob,
        "auditor": auditor,
        "billing": billing,
        "reports": reports,
    }


async def test_resolve_is_complete_deduplicated_and_ordered(store, graph):
    permissions = await AuthorizationResolver(store).resolve(graph["alice"].id)

    assert [(p.module_name, p.action) for p in permissions] == [
        ("Billing", "read"),
        ("Billing", "update"),
        ("Reports", "read"),
    ]
    assert permissions[0].permission_id == _permission(graph["billing"], Action.READ).id
    assert permissions[0].module_id == graph["billing"][0].module_id


async def test_user_without_groups_resolves_to_nothing(store, graph):
    assert await AuthorizationResolver(store).resolve(graph["bob"].id) == []


async def test_unknown_user_resolves_to_nothing(store, graph):
    resolver = AuthorizationResolver(store)
    assert await resolver.resolve(999) == []
    assert not await resolver.has_permission(999, "Billing", "read")


async def test_group_without_roles_grants_nothing(store, graph):
    empty = await store.create(Group, name="Empty")
    await store.add_pair(MEMBERSHIP, empty.id, graph["bob"].id)
    await store.commit()

    assert await AuthorizationResolver(store).resolve(graph["bob"].id) == []


async def test_has_permission_agrees_with_resolve(store, graph):
    resolver = AuthorizationResolver(store)
    user_id = graph["alice"].id
    resolved = {(p.module_name, p.action) for p in await resolver.resolve(user_id)}

    for module_name in ("Billing", "Reports", "Nowhere"):
        for action in Action:
            expected = (module_name, action.value) in resolved
            assert await resolver.has_permission(user_id, module_name, action.value) is expected


async def test_removing_a_grant_removes_the_permission(store):
    _, billing = await create_module_with_permissions(store, "Billing")
    read = _permission(billing, Action.READ)
    auditor = await store.create(Role, name="Auditor")
    finance = await store.create(Group, name="Finance")
    user = await _user(store, "carol")
    await store.add_pair(GRANT, auditor.id, read.id)
    await store.add_pair(ROLE_ASSIGNMENT, finance.id, auditor.id)
    await store.add_pair(MEMBERSHIP, finance.id, user.id)
    await store.commit()

    resolver = AuthorizationResolver(store)
    assert ("Billing", "read") in {(p.module_name, p.action) for p in await resolver.resolve(user.id)}

    assert await store.remove_pair(GRANT, auditor.id, read.id)
    await store.commit()

    assert ("Billing", "read") not in {(p.module_name, p.action) for p in await resolver.resolve(user.id)}
    assert not await resolver.has_permission(user.id, "Billing", "read")


async def test_deleting_a_role_cascades(store, graph):
    resolver = AuthorizationResolver(store)
    alice = graph["alice"].id

    await store.delete(Role, graph["auditor"].id)
    await store.commit()

    assert [(p.module_name, p.action) for p in await resolver.resolve(alice)] == [
        ("Billing", "read"),
        ("Billing", "update"),
    ]
    clerk = await store.find_by(Role, name="Clerk")
    assert await store.pair_counts(GRANT) == {clerk.id: 2}


async def test_deleting_a_group_removes_what_it_conferred(store, graph):
    finance = await store.find_by(Group, name="Finance")
    await store.delete(Group, finance.id)
    await store.commit()

    permissions = await AuthorizationResolver(store).resolve(graph["alice"].id)
    assert [(p.module_name, p.action) for p in permissions] == [("Billing", "read"), ("Reports", "read")]
