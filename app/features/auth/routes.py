"""
Authentication routes: registration, login, and permission introspection for
the caller.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, Request, status
from slowapi.util import get_remote_address

from app.core import config
from app.core.errors import Unauthenticated
from app.core.rate_limit import limiter
from app.features.permissions.dependencies import get_resolver, get_store
from app.features.permissions.resolver import AuthorizationResolver
from app.features.permissions.schemas import (
    EffectivePermissionResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
    UserPermissionsResponse,
)
from app.features.permissions.store import EntityStore
from app.features.users.auth import create_access_token, hash_password, verify_password
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.features.users.schemas import LoginRequest, TokenResponse, UserCreate, UserPublic
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


def _token_for(user: User) -> str:
    return create_access_token(user.id, username=user.username, email=user.email)


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user: UserCreate,
    store: Annotated[EntityStore, Depends(get_store)],
):
    """Register a new user and return a bearer token for them."""
    db_user = await store.create(
        User,
        conflict_message="Username or email already exists",
        username=user.username,
        email=user.email,
        password_hash=hash_password(user.password),
    )
    log.info("Registered user %s", db_user.id)
    return TokenResponse(
        message="User registered successfully",
        token=_token_for(db_user),
        user=UserPublic.model_validate(db_user),
    )


@router.post("/login", response_model=TokenResponse)
@limiter.limit(config.LOGIN_RATE_LIMIT, key_func=get_remote_address)
async def login(
    request: Request,
    credentials: LoginRequest,
    store: Annotated[EntityStore, Depends(get_store)],
):
    """Exchange email and password for a bearer token."""
    user = await store.find_by(User, email=credentials.email)
    if user is None or not verify_password(credentials.password, user.password_hash):
        raise Unauthenticated("Invalid credentials")
    return TokenResponse(
        message="Login successful",
        token=_token_for(user),
        user=UserPublic.model_validate(user),
    )


@router.get("/me/permissions", response_model=UserPermissionsResponse)
async def my_permissions(
    current_user: Annotated[User, Depends(get_current_user)],
    resolver: Annotated[AuthorizationResolver, Depends(get_resolver)],
):
    """Effective permissions of the caller."""
    permissions = await resolver.resolve(current_user.id)
    return UserPermissionsResponse(
        user_id=current_user.id,
        permissions=[EffectivePermissionResponse.model_validate(permission) for permission in permissions],
    )


@router.post("/simulate-action", response_model=PermissionCheckResponse)
async def simulate_action(
    check_request: PermissionCheckRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    resolver: Annotated[AuthorizationResolver, Depends(get_resolver)],
):
    """Check whether a user (the caller by default) may perform an action on a module."""
    target_user_id = check_request.target_user_id or current_user.id
    action = check_request.action.value
    allowed = await resolver.has_permission(target_user_id, check_request.module_name, action)
    verb = "has" if allowed else "does not have"
    return PermissionCheckResponse(
        has_permission=allowed,
        message=f"User {verb} permission to {action} on {check_request.module_name}",
    )
