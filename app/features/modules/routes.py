"""
Module management API routes.

A module is the resource domain permissions are scoped to. Creating one also
creates its four CRUD permissions unless asked not to.
"""
from typing import Annotated, List
from fastapi import APIRouter, Depends, status

from app.features.modules.service import MODULE_CONFLICT, create_module_with_permissions
from app.features.permissions.dependencies import get_store, require_permission
from app.features.permissions.models import Action, Module
from app.features.permissions.schemas import (
    ModuleCreate,
    ModuleDetail,
    ModuleListItem,
    ModuleResponse,
    ModuleUpdate,
    PermissionResponse,
)
from app.features.permissions.store import EntityStore
from app.features.users.models import User


router = APIRouter()

Store = Annotated[EntityStore, Depends(get_store)]


async def _module_detail(store: EntityStore, module: Module) -> ModuleDetail:
    permissions = await store.module_permissions(module.id)
    return ModuleDetail(
        **ModuleResponse.model_validate(module).model_dump(),
        permissions=[PermissionResponse.model_validate(permission) for permission in permissions],
    )


@router.get("", response_model=List[ModuleListItem])
async def list_modules(
    store: Store,
    _user: Annotated[User, Depends(require_permission("Modules", Action.READ))],
):
    """List modules ordered by name, with permission counts."""
    modules = await store.list_all(Module, Module.name)
    counts = await store.module_permission_counts()
    return [
        ModuleListItem(**ModuleResponse.model_validate(module).model_dump(), permission_count=counts.get(module.id, 0))
        for module in modules
    ]


@router.get("/{module_id}", response_model=ModuleDetail)
async def get_module(
    module_id: int,
    store: Store,
    _user: Annotated[User, Depends(require_permission("Modules", Action.READ))],
):
    """Get a specific module with its permissions."""
    module = await store.get(Module, module_id)
    return await _module_detail(store, module)


@router.post("", response_model=ModuleDetail, status_code=status.HTTP_201_CREATED)
async def create_module(
    module: ModuleCreate,
    store: Store,
    _user: Annotated[User, Depends(require_permission("Modules", Action.CREATE))],
):
    """Create a new module (and its basic permissions)."""
    db_module, permissions = await create_module_with_permissions(
        store, module.name, module.description, module.with_default_permissions
    )
    return ModuleDetail(
        **ModuleResponse.model_validate(db_module).model_dump(),
        permissions=[PermissionResponse.model_validate(permission) for permission in permissions],
    )


@router.put("/{module_id}", response_model=ModuleDetail)
async def update_module(
    module_id: int,
    module_update: ModuleUpdate,
    store: Store,
    _user: Annotated[User, Depends(require_permission("Modules", Action.UPDATE))],
):
    """Update a module. Its permissions keep their identity across renames."""
    db_module = await store.get(Module, module_id)
    db_module = await store.update(
        db_module, conflict_message=MODULE_CONFLICT, **module_update.model_dump(exclude_unset=True)
    )
    return await _module_detail(store, db_module)


@router.delete("/{module_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_module(
    module_id: int,
    store: Store,
    _user: Annotated[User, Depends(require_permission("Modules", Action.DELETE))],
):
    """Delete a module and its permissions. Refused while any of them is granted."""
    await store.delete_module(module_id)
    return None
