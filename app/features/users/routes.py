"""
User management routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, status

from app.features.permissions.dependencies import get_resolver, get_store, require_permission
from app.features.permissions.models import Action
from app.features.permissions.resolver import AuthorizationResolver
from app.features.permissions.schemas import EffectivePermissionResponse, UserPermissionsResponse
from app.features.permissions.store import MEMBERSHIP, EntityStore
from app.features.users.auth import hash_password
from app.features.users.models import User
from app.features.users.schemas import (
    GroupSummary,
    UserCreate,
    UserDetail,
    UserListItem,
    UserResponse,
    UserUpdate,
)


router = APIRouter()

Store = Annotated[EntityStore, Depends(get_store)]

USER_CONFLICT = "Username or email already exists"


@router.get("", response_model=list[UserListItem])
async def list_users(
    store: Store,
    _user: Annotated[User, Depends(require_permission("Users", Action.READ))],
):
    """List users ordered by username, with the names of their groups."""
    users = await store.list_all(User, User.username)
    groups = await store.group_names_by_user()
    return [
        UserListItem(**UserResponse.model_validate(user).model_dump(), groups=groups.get(user.id, []))
        for user in users
    ]


@router.get("/{user_id}", response_model=UserDetail)
async def get_user(
    user_id: int,
    store: Store,
    _user: Annotated[User, Depends(require_permission("Users", Action.READ))],
):
    """Get a user with their groups."""
    user = await store.get(User, user_id)
    groups = await store.anchors(MEMBERSHIP, user_id)
    return UserDetail(
        **UserResponse.model_validate(user).model_dump(),
        groups=[GroupSummary.model_validate(group) for group in groups],
    )


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user: UserCreate,
    store: Store,
    _user: Annotated[User, Depends(require_permission("Users", Action.CREATE))],
):
    """Create a user."""
    return await store.create(
        User,
        conflict_message=USER_CONFLICT,
        username=user.username,
        email=user.email,
        password_hash=hash_password(user.password),
    )


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    user_update: UserUpdate,
    store: Store,
    _user: Annotated[User, Depends(require_permission("Users", Action.UPDATE))],
):
    """Update a user. Only provided fields change."""
    db_user = await store.get(User, user_id)
    update_data = user_update.model_dump(exclude_unset=True, exclude_none=True)
    password = update_data.pop("password", None)
    if password:
        update_data["password_hash"] = hash_password(password)
    return await store.update(db_user, conflict_message=USER_CONFLICT, **update_data)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    store: Store,
    _user: Annotated[User, Depends(require_permission("Users", Action.DELETE))],
):
    """Delete a user; their memberships go with them."""
    await store.delete(User, user_id)
    return None


@router.get("/{user_id}/permissions", response_model=UserPermissionsResponse)
async def get_user_permissions(
    user_id: int,
    resolver: Annotated[AuthorizationResolver, Depends(get_resolver)],
    _user: Annotated[User, Depends(require_permission("Users", Action.READ))],
):
    """Effective permissions of any user (empty for an unknown user)."""
    permissions = await resolver.resolve(user_id)
    return UserPermissionsResponse(
        user_id=user_id,
        permissions=[EffectivePermissionResponse.model_validate(permission) for permission in permissions],
    )
