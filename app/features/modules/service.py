"""
Module creation shared by the modules API and default seeding.
"""
from app.features.permissions.models import Action, Module, Permission
from app.features.permissions.store import EntityStore
from app.utils import get_logger


log = get_logger(__name__)

MODULE_CONFLICT = "Module name already exists"


async def create_module_with_permissions(
    store: EntityStore,
    name: str,
    description: str | None = None,
    with_default_permissions: bool = True,
) -> tuple[Module, list[Permission]]:
    """Create a module and, by default, one permission per action."""
    module = await store.create(Module, conflict_message=MODULE_CONFLICT, name=name, description=description)
    permissions = []
    if with_default_permissions:
        for action in Action:
            permissions.append(
                await store.create(
                    Permission,
                    action=action.value,
                    module_id=module.id,
                    description=f"{action.value.capitalize()} {name}",
                )
            )
        log.info("Module %r created with %d permissions", name, len(permissions))
    return module, permissions
