"""
Policy gate and per-request component wiring.

Each request gets one EntityStore bound to its session; the resolver and the
coordinator are built on top of it. Guarded routes declare a static
(module, action) requirement with ``require_permission``. FastAPI resolves
dependencies before running the endpoint, so a denied request never reaches
the store's write path.
"""
import enum
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import Forbidden
from app.features.permissions.coordinator import AssignmentCoordinator
from app.features.permissions.models import Action
from app.features.permissions.resolver import AuthorizationResolver
from app.features.permissions.store import EntityStore
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# Component wiring
# ============================================================================

def get_store(db: Annotated[AsyncSession, Depends(get_db)]) -> EntityStore:
    return EntityStore(db)


def get_resolver(store: Annotated[EntityStore, Depends(get_store)]) -> AuthorizationResolver:
    return AuthorizationResolver(store)


def get_coordinator(store: Annotated[EntityStore, Depends(get_store)]) -> AssignmentCoordinator:
    return AssignmentCoordinator(store)


# ============================================================================
# Policy Gate
# ============================================================================

class GateDecision(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    AUTHORIZED = "authorized"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class PermissionRequirement:
    module: str
    action: Action

    def __str__(self) -> str:
        return f"{self.action.value} on {self.module}"


async def authorize(
    resolver: AuthorizationResolver,
    user_id: int | None,
    requirement: PermissionRequirement | None,
) -> GateDecision:
    """
    Evaluate the gate for one request.

    ``user_id`` is None when identity verification failed. A request with no
    requirement stops at AUTHENTICATED, which callers treat as allowed.
    """
    if user_id is None:
        return GateDecision.UNAUTHENTICATED
    if requirement is None:
        return GateDecision.AUTHENTICATED
    if await resolver.has_permission(user_id, requirement.module, requirement.action.value):
        return GateDecision.AUTHORIZED
    return GateDecision.FORBIDDEN


def require_permission(module: str, action: Action | str):
    """
    FastAPI dependency to require a specific permission.

    Usage:
        @router.post("/groups")
        async def create_group(
            user: User = Depends(require_permission("Groups", Action.CREATE))
        ):
            # User may create groups
            pass

    Returns:
        Dependency function that returns the current user if they have permission

    Raises:
        Unauthenticated: missing or invalid bearer token (from get_current_user)
        Forbidden: the user does not hold the permission
    """
    requirement = PermissionRequirement(module, Action(action))

    async def permission_dependency(
        current_user: Annotated[User, Depends(get_current_user)],
        resolver: Annotated[AuthorizationResolver, Depends(get_resolver)],
    ) -> User:
        decision = await authorize(resolver, current_user.id, requirement)
        if decision is not GateDecision.AUTHORIZED:
            log.info("Denied user %s: %s", current_user.id, requirement)
            raise Forbidden(
                f"Insufficient permissions: {requirement}",
                {"module": requirement.module, "action": requirement.action.value},
            )
        return current_user

    permission_dependency.requirement = requirement
    return permission_dependency
