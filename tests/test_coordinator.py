import pytest
import pytest_asyncio

from app.core.errors import InvalidArgument, NotFound
from app.features.modules.service import create_module_with_permissions
from app.features.permissions.coordinator import AssignmentCoordinator
from app.features.permissions.models import Group, Role
from app.features.permissions.store import GRANT, MEMBERSHIP
from app.features.users.models import User


@pytest_asyncio.fixture
async def finance(store):
    group = await store.create(Group, name="Finance")
    users = [
        await store.create(User, username=name, email=f"{name}@example.com", password_hash="x")
        for name in ("ann", "ben", "cal")
    ]
    await store.commit()
    return group, users


async def _member_ids(store, group_id):
    return [user.id for user in await store.counterparts(MEMBERSHIP, group_id)]


async def test_attach_adds_every_member(store, finance):
    group, users = finance
    ids = [user.id for user in users]

    result = await AssignmentCoordinator(store).attach(MEMBERSHIP, group.id, ids)

    assert result.ok
    assert result.added_count == 3
    assert [user.id for user in result.counterparts] == ids
    assert await _member_ids(store, group.id) == ids


async def test_attach_is_idempotent(store, finance):
    group, users = finance
    coordinator = AssignmentCoordinator(store)

    await coordinator.attach(MEMBERSHIP, group.id, [users[0].id])
    result = await coordinator.attach(MEMBERSHIP, group.id, [users[0].id, users[1].id])

    assert result.ok
    assert result.added_count == 1
    assert await _member_ids(store, group.id) == [users[0].id, users[1].id]


async def test_repeated_ids_count_once(store, finance):
    group, users = finance

    result = await AssignmentCoordinator(store).attach(MEMBERSHIP, group.id, [users[0].id, users[0].id])

    assert result.added_count == 1
    assert await _member_ids(store, group.id) == [users[0].id]


async def test_missing_counterpart_rejects_whole_batch(store, finance):
    group, users = finance

    with pytest.raises(InvalidArgument) as excinfo:
        await AssignmentCoordinator(store).attach(MEMBERSHIP, group.id, [users[0].id, users[1].id, 999])

    assert "999" in excinfo.value.message
    assert excinfo.value.details == {"missing_ids": [999]}
    assert await _member_ids(store, group.id) == []


async def test_empty_batch_is_rejected(store, finance):
    group, _ = finance
    with pytest.raises(InvalidArgument, match="User IDs array is required"):
        await AssignmentCoordinator(store).attach(MEMBERSHIP, group.id, [])


async def test_missing_anchor_is_not_found(store, finance):
    _, users = finance
    with pytest.raises(NotFound, match="Group not found"):
        await AssignmentCoordinator(store).attach(MEMBERSHIP, 999, [users[0].id])


def _fail_for(store, monkeypatch, failing_id):
    original = store.add_pair

    async def flaky_add_pair(relation, anchor_id, counterpart_id):
        if counterpart_id == failing_id:
            raise RuntimeError("disk on fire")
        return await original(relation, anchor_id, counterpart_id)

    monkeypatch.setattr(store, "add_pair", flaky_add_pair)


async def test_item_failure_rolls_back_atomic_batch(store, finance, monkeypatch):
    group, users = finance
    group_id, ids = group.id, [user.id for user in users]
    _fail_for(store, monkeypatch, ids[1])

    result = await AssignmentCoordinator(store, atomic=True).attach(MEMBERSHIP, group_id, ids)

    assert not result.ok
    assert result.added_count == 0
    assert [error.counterpart_id for error in result.errors] == [ids[1]]
    assert result.errors[0].reason == f"Error assigning user {ids[1]}"
    assert await _member_ids(store, group_id) == []


async def test_item_failure_keeps_successes_when_not_atomic(store, finance, monkeypatch):
    group, users = finance
    _fail_for(store, monkeypatch, users[1].id)

    result = await AssignmentCoordinator(store, atomic=False).attach(
        MEMBERSHIP, group.id, [user.id for user in users]
    )

    assert not result.ok
    assert result.added_count == 2
    assert len(result.errors) == 1
    assert await _member_ids(store, group.id) == [users[0].id, users[2].id]


async def test_grant_and_revoke(store):
    _, permissions = await create_module_with_permissions(store, "Billing")
    role = await store.create(Role, name="Auditor")
    await store.commit()
    coordinator = AssignmentCoordinator(store)

    result = await coordinator.attach(GRANT, role.id, [permission.id for permission in permissions])
    assert result.added_count == 4
    assert {permission.module_name for permission in result.counterparts} == {"Billing"}

    await coordinator.detach(GRANT, role.id, permissions[0].id)
    await store.commit()
    assert len(await store.counterparts(GRANT, role.id)) == 3


async def test_detach_absent_pair_is_not_found(store, finance):
    group, users = finance
    coordinator = AssignmentCoordinator(store)
    await coordinator.attach(MEMBERSHIP, group.id, [users[0].id])

    await coordinator.detach(MEMBERSHIP, group.id, users[0].id)
    with pytest.raises(NotFound, match="User not found in group"):
        await coordinator.detach(MEMBERSHIP, group.id, users[0].id)


async def test_atomic_rollback_keeps_earlier_uncommitted_work(store, finance, monkeypatch):
    _, users = finance
    ids = [user.id for user in users]
    pending = await store.create(Group, name="Pending")
    await store.add_pair(MEMBERSHIP, pending.id, ids[0])
    _fail_for(store, monkeypatch, ids[2])

    result = await AssignmentCoordinator(store, atomic=True).attach(MEMBERSHIP, pending.id, ids[1:])

    assert result.added_count == 0
    assert await store.find_by(Group, name="Pending") is not None
    assert await _member_ids(store, pending.id) == [ids[0]]


async def test_attach_leaves_commit_to_the_session_owner(store, finance):
    group, users = finance
    group_id, user_id = group.id, users[0].id

    await AssignmentCoordinator(store).attach(MEMBERSHIP, group_id, [user_id])
    await store.rollback()

    assert await _member_ids(store, group_id) == []
