"""
Group management API routes.

Provides endpoints for managing groups, their members and their roles.
"""
from typing import Annotated, List
from fastapi import APIRouter, Depends, status

from app.features.permissions.coordinator import AssignmentCoordinator
from app.features.permissions.dependencies import get_coordinator, get_store, require_permission
from app.features.permissions.models import Action, Group
from app.features.permissions.responses import assignment_response
from app.features.permissions.schemas import (
    AssignmentResponse,
    AssignRolesToGroup,
    AssignUsersToGroup,
    GroupCreate,
    GroupDetail,
    GroupListItem,
    GroupResponse,
    GroupUpdate,
    PartialAssignmentResponse,
    RoleResponse,
)
from app.features.permissions.store import MEMBERSHIP, ROLE_ASSIGNMENT, EntityStore
from app.features.users.models import User
from app.features.users.schemas import UserPublic


router = APIRouter()

Store = Annotated[EntityStore, Depends(get_store)]
Coordinator = Annotated[AssignmentCoordinator, Depends(get_coordinator)]

GROUP_CONFLICT = "Group name already exists"


async def _group_detail(store: EntityStore, group: Group) -> GroupDetail:
    users = await store.counterparts(MEMBERSHIP, group.id)
    roles = await store.counterparts(ROLE_ASSIGNMENT, group.id)
    return GroupDetail(
        **GroupResponse.model_validate(group).model_dump(),
        users=[UserPublic.model_validate(user) for user in users],
        roles=[RoleResponse.model_validate(role) for role in roles],
    )


@router.get("", response_model=List[GroupListItem])
async def list_groups(
    store: Store,
    _user: Annotated[User, Depends(require_permission("Groups", Action.READ))],
):
    """List groups ordered by name, with member and role counts."""
    groups = await store.list_all(Group, Group.name)
    members = await store.pair_counts(MEMBERSHIP)
    roles = await store.pair_counts(ROLE_ASSIGNMENT)
    return [
        GroupListItem(
            **GroupResponse.model_validate(group).model_dump(),
            member_count=members.get(group.id, 0),
            role_count=roles.get(group.id, 0),
        )
        for group in groups
    ]


@router.get("/{group_id}", response_model=GroupDetail)
async def get_group(
    group_id: int,
    store: Store,
    _user: Annotated[User, Depends(require_permission("Groups", Action.READ))],
):
    """Get a specific group with its users and roles."""
    group = await store.get(Group, group_id)
    return await _group_detail(store, group)


@router.post("", response_model=GroupDetail, status_code=status.HTTP_201_CREATED)
async def create_group(
    group: GroupCreate,
    store: Store,
    _user: Annotated[User, Depends(require_permission("Groups", Action.CREATE))],
):
    """Create a new group."""
    db_group = await store.create(Group, conflict_message=GROUP_CONFLICT, **group.model_dump())
    return GroupDetail(**GroupResponse.model_validate(db_group).model_dump())


@router.put("/{group_id}", response_model=GroupDetail)
async def update_group(
    group_id: int,
    group_update: GroupUpdate,
    store: Store,
    _user: Annotated[User, Depends(require_permission("Groups", Action.UPDATE))],
):
    """Update a group."""
    db_group = await store.get(Group, group_id)
    db_group = await store.update(
        db_group, conflict_message=GROUP_CONFLICT, **group_update.model_dump(exclude_unset=True)
    )
    return await _group_detail(store, db_group)


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group(
    group_id: int,
    store: Store,
    _user: Annotated[User, Depends(require_permission("Groups", Action.DELETE))],
):
    """Delete a group; its memberships and role assignments go with it."""
    await store.delete(Group, group_id)
    return None


# ============================================================================
# Membership
# ============================================================================

@router.post(
    "/{group_id}/users",
    response_model=AssignmentResponse[UserPublic],
    responses={status.HTTP_400_BAD_REQUEST: {"model": PartialAssignmentResponse}},
)
async def assign_users_to_group(
    group_id: int,
    assignment: AssignUsersToGroup,
    coordinator: Coordinator,
    _user: Annotated[User, Depends(require_permission("Groups", Action.UPDATE))],
):
    """Add users to a group. All user ids must exist or nothing is written."""
    result = await coordinator.attach(MEMBERSHIP, group_id, assignment.user_ids)
    return assignment_response(result, UserPublic, "user")


@router.delete("/{group_id}/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_user_from_group(
    group_id: int,
    user_id: int,
    coordinator: Coordinator,
    _user: Annotated[User, Depends(require_permission("Groups", Action.UPDATE))],
):
    """Remove a user from a group."""
    await coordinator.detach(MEMBERSHIP, group_id, user_id)
    return None


# ============================================================================
# Role Assignment
# ============================================================================

@router.post(
    "/{group_id}/roles",
    response_model=AssignmentResponse[RoleResponse],
    responses={status.HTTP_400_BAD_REQUEST: {"model": PartialAssignmentResponse}},
)
async def assign_roles_to_group(
    group_id: int,
    assignment: AssignRolesToGroup,
    coordinator: Coordinator,
    _user: Annotated[User, Depends(require_permission("Groups", Action.UPDATE))],
):
    """Assign roles to a group. All role ids must exist or nothing is written."""
    result = await coordinator.attach(ROLE_ASSIGNMENT, group_id, assignment.role_ids)
    return assignment_response(result, RoleResponse, "role")


@router.delete("/{group_id}/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_role_from_group(
    group_id: int,
    role_id: int,
    coordinator: Coordinator,
    _user: Annotated[User, Depends(require_permission("Groups", Action.UPDATE))],
):
    """Remove a role from a group."""
    await coordinator.detach(ROLE_ASSIGNMENT, group_id, role_id)
    return None
