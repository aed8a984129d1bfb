"""
Effective-permission resolution.

A user's effective permissions are the permissions reachable through
memberships -> role_assignments -> grants. The traversal is a single join;
a permission reachable through several groups or roles appears once.
"""
from dataclasses import dataclass

from sqlalchemy import Select, select

from app.features.permissions.models import (
    Module,
    Permission,
    grants,
    memberships,
    role_assignments,
)
from app.features.permissions.store import EntityStore
from app.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class EffectivePermission:
    permission_id: int
    module_id: int
    module_name: str
    action: str


def _reachable_from(user_id: int) -> Select:
    return (
        select(Permission.id, Module.id, Module.name, Permission.action)
        .select_from(memberships)
        .join(role_assignments, role_assignments.c.group_id == memberships.c.group_id)
        .join(grants, grants.c.role_id == role_assignments.c.role_id)
        .join(Permission, Permission.id == grants.c.permission_id)
        .join(Module, Module.id == Permission.module_id)
        .where(memberships.c.user_id == user_id)
    )


class AuthorizationResolver:
    """Read-only view over the store answering "what may this user do"."""

    def __init__(self, store: EntityStore):
        self._store = store

    async def resolve(self, user_id: int) -> list[EffectivePermission]:
        """
        Return the distinct permissions reachable by ``user_id``, ordered by
        module name then action. An unknown user resolves to an empty list.
        """
        stmt = _reachable_from(user_id).distinct().order_by(Module.name, Permission.action)
        rows = await self._store.fetch_all(stmt)
        return [
            EffectivePermission(
                permission_id=permission_id,
                module_id=module_id,
                module_name=module_name,
                action=action,
            )
            for permission_id, module_id, module_name, action in rows
        ]

    async def has_permission(self, user_id: int, module_name: str, action: str) -> bool:
        """Targeted existence check for one (module, action) pair."""
        stmt = (
            _reachable_from(user_id)
            .where(Module.name == module_name, Permission.action == action)
            .limit(1)
        )
        allowed = await self._store.fetch_first(stmt) is not None
        log.debug("User %s %s %s on %s", user_id, "may" if allowed else "may not", action, module_name)
        return allowed
