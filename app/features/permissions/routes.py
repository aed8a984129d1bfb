"""
Permission management API routes.

A permission is identified by its (module, action) pair. Deleting one also
removes it from every role it was granted to.
"""
from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy import select

from app.core.errors import NotFound
from app.features.permissions.dependencies import get_store, require_permission
from app.features.permissions.models import Action, Module, Permission
from app.features.permissions.schemas import (
    PermissionCreate,
    PermissionDetail,
    PermissionListItem,
    PermissionResponse,
    PermissionUpdate,
    RoleResponse,
)
from app.features.permissions.store import GRANT, EntityStore
from app.features.users.models import User


router = APIRouter()

Store = Annotated[EntityStore, Depends(get_store)]

PERMISSION_CONFLICT = "Permission already exists for this module and action"


async def _require_module(store: EntityStore, module_id: int) -> None:
    if await store.find(Module, module_id) is None:
        raise NotFound("Module not found", {"module_id": module_id})


@router.get("", response_model=List[PermissionListItem])
async def list_permissions(
    store: Store,
    _user: Annotated[User, Depends(require_permission("Permissions", Action.READ))],
    module_id: Optional[int] = None,
    action: Optional[Action] = None,
):
    """List permissions ordered by module name then action, with role counts."""
    stmt = select(Permission).join(Permission.module).order_by(Module.name, Permission.action)
    if module_id is not None:
        stmt = stmt.where(Permission.module_id == module_id)
    if action is not None:
        stmt = stmt.where(Permission.action == action.value)
    rows = await store.fetch_all(stmt)
    role_counts = await store.pair_counts(GRANT, by="counterpart")
    return [
        PermissionListItem(
            **PermissionResponse.model_validate(permission).model_dump(),
            role_count=role_counts.get(permission.id, 0),
        )
        for (permission,) in rows
    ]


@router.get("/{permission_id}", response_model=PermissionDetail)
async def get_permission(
    permission_id: int,
    store: Store,
    _user: Annotated[User, Depends(require_permission("Permissions", Action.READ))],
):
    """Get a specific permission with the roles granting it."""
    permission = await store.get(Permission, permission_id)
    roles = await store.anchors(GRANT, permission_id)
    return PermissionDetail(
        **PermissionResponse.model_validate(permission).model_dump(),
        roles=[RoleResponse.model_validate(role) for role in roles],
    )


@router.post("", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    permission: PermissionCreate,
    store: Store,
    _user: Annotated[User, Depends(require_permission("Permissions", Action.CREATE))],
):
    """Create a new permission on an existing module."""
    await _require_module(store, permission.module_id)
    return await store.create(
        Permission, conflict_message=PERMISSION_CONFLICT, **permission.model_dump(mode="json")
    )


@router.put("/{permission_id}", response_model=PermissionResponse)
async def update_permission(
    permission_id: int,
    permission_update: PermissionUpdate,
    store: Store,
    _user: Annotated[User, Depends(require_permission("Permissions", Action.UPDATE))],
):
    """Update a permission."""
    db_permission = await store.get(Permission, permission_id)
    update_data = permission_update.model_dump(exclude_unset=True, mode="json")
    if update_data.get("module_id") is not None:
        await _require_module(store, update_data["module_id"])
    return await store.update(db_permission, conflict_message=PERMISSION_CONFLICT, **update_data)


@router.delete("/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_permission(
    permission_id: int,
    store: Store,
    _user: Annotated[User, Depends(require_permission("Permissions", Action.DELETE))],
):
    """Delete a permission; every grant of it is removed too."""
    await store.delete(Permission, permission_id)
    return None
