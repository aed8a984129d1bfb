"""
Role management API routes.
"""
from typing import Annotated, List
from fastapi import APIRouter, Depends, status

from app.features.permissions.coordinator import AssignmentCoordinator
from app.features.permissions.dependencies import get_coordinator, get_store, require_permission
from app.features.permissions.models import Action, Role
from app.features.permissions.responses import assignment_response
from app.features.permissions.schemas import (
    AssignmentResponse,
    AssignPermissionsToRole,
    GroupResponse,
    PartialAssignmentResponse,
    PermissionResponse,
    RoleCreate,
    RoleDetail,
    RoleListItem,
    RoleResponse,
    RoleUpdate,
)
from app.features.permissions.store import GRANT, ROLE_ASSIGNMENT, EntityStore
from app.features.users.models import User


router = APIRouter()

Store = Annotated[EntityStore, Depends(get_store)]
Coordinator = Annotated[AssignmentCoordinator, Depends(get_coordinator)]

ROLE_CONFLICT = "Role name already exists"


@router.get("", response_model=List[RoleListItem])
async def list_roles(
    store: Store,
    _user: Annotated[User, Depends(require_permission("Roles", Action.READ))],
):
    """List roles ordered by name, with group and permission counts."""
    roles = await store.list_all(Role, Role.name)
    groups = await store.pair_counts(ROLE_ASSIGNMENT, by="counterpart")
    permissions = await store.pair_counts(GRANT)
    return [
        RoleListItem(
            **RoleResponse.model_validate(role).model_dump(),
            group_count=groups.get(role.id, 0),
            permission_count=permissions.get(role.id, 0),
        )
        for role in roles
    ]


@router.get("/{role_id}", response_model=RoleDetail)
async def get_role(
    role_id: int,
    store: Store,
    _user: Annotated[User, Depends(require_permission("Roles", Action.READ))],
):
    """Get a specific role with its permissions and the groups that hold it."""
    role = await store.get(Role, role_id)
    permissions = await store.counterparts(GRANT, role_id)
    groups = await store.anchors(ROLE_ASSIGNMENT, role_id)
    permissions.sort(key=lambda permission: (permission.module_name, permission.action))
    return RoleDetail(
        **RoleResponse.model_validate(role).model_dump(),
        permissions=[PermissionResponse.model_validate(permission) for permission in permissions],
        groups=[GroupResponse.model_validate(group) for group in groups],
    )


@router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role: RoleCreate,
    store: Store,
    _user: Annotated[User, Depends(require_permission("Roles", Action.CREATE))],
):
    """Create a new role."""
    return await store.create(Role, conflict_message=ROLE_CONFLICT, **role.model_dump())


@router.put("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: int,
    role_update: RoleUpdate,
    store: Store,
    _user: Annotated[User, Depends(require_permission("Roles", Action.UPDATE))],
):
    """Update a role."""
    db_role = await store.get(Role, role_id)
    return await store.update(db_role, conflict_message=ROLE_CONFLICT, **role_update.model_dump(exclude_unset=True))


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: int,
    store: Store,
    _user: Annotated[User, Depends(require_permission("Roles", Action.DELETE))],
):
    """Delete a role; its grants and group assignments go with it."""
    await store.delete(Role, role_id)
    return None


# ============================================================================
# Grants
# ============================================================================

@router.post(
    "/{role_id}/permissions",
    response_model=AssignmentResponse[PermissionResponse],
    responses={status.HTTP_400_BAD_REQUEST: {"model": PartialAssignmentResponse}},
)
async def assign_permissions_to_role(
    role_id: int,
    assignment: AssignPermissionsToRole,
    coordinator: Coordinator,
    _user: Annotated[User, Depends(require_permission("Roles", Action.UPDATE))],
):
    """Grant permissions to a role. All permission ids must exist or nothing is written."""
    result = await coordinator.attach(GRANT, role_id, assignment.permission_ids)
    return assignment_response(result, PermissionResponse, "permission")


@router.delete("/{role_id}/permissions/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_permission_from_role(
    role_id: int,
    permission_id: int,
    coordinator: Coordinator,
    _user: Annotated[User, Depends(require_permission("Roles", Action.UPDATE))],
):
    """Revoke a permission from a role."""
    await coordinator.detach(GRANT, role_id, permission_id)
    return None
