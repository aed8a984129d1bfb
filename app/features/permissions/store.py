"""
Entity store: CRUD for users, groups, roles, modules and permissions, plus
pair create/delete for the three relation tables.

Every statement goes through one ``asyncio.Lock`` so callers may fan out
concurrently over the shared session; the session itself is never used by
two coroutines at once. Writes run inside SAVEPOINTs, so a failed write
leaves the surrounding transaction usable.
"""
import asyncio
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

from sqlalchemy import Table, delete, func, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from app.core.errors import AccessControlError, Conflict, DependencyInUse, InvalidArgument, NotFound
from app.features.permissions.models import (
    Group,
    Module,
    Permission,
    Role,
    grants,
    memberships,
    role_assignments,
)
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)

ModelT = TypeVar("ModelT")


@dataclass(frozen=True)
class Relation:
    """A many-to-many relation table seen from its anchor side."""
    name: str
    table: Table
    anchor_model: type
    anchor_key: str
    counterpart_model: type
    counterpart_key: str

    @property
    def anchor_column(self):
        return self.table.c[self.anchor_key]

    @property
    def counterpart_column(self):
        return self.table.c[self.counterpart_key]

    @property
    def anchor_label(self) -> str:
        return self.anchor_model.__name__

    @property
    def counterpart_label(self) -> str:
        return self.counterpart_model.__name__


MEMBERSHIP = Relation("membership", memberships, Group, "group_id", User, "user_id")
ROLE_ASSIGNMENT = Relation("role_assignment", role_assignments, Group, "group_id", Role, "role_id")
GRANT = Relation("grant", grants, Role, "role_id", Permission, "permission_id")


def translate_integrity_error(
    exc: IntegrityError,
    label: str,
    conflict_message: str | None = None,
) -> AccessControlError:
    """Map a driver integrity error to a stable error kind without leaking driver text."""
    text = str(exc.orig).lower()
    if "foreign key" in text:
        return NotFound(f"A resource referenced by this {label.lower()} does not exist")
    if "check constraint" in text or "not null" in text or "not-null" in text:
        return InvalidArgument(f"Invalid value for {label.lower()}")
    return Conflict(conflict_message or f"{label} already exists")


class EntityStore:
    """Relational storage bound to one explicit session."""

    def __init__(self, session: AsyncSession):
        self._session = session
        self._lock = asyncio.Lock()

    @property
    def session(self) -> AsyncSession:
        return self._session

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    async def create(self, model: type[ModelT], *, conflict_message: str | None = None, **fields: Any) -> ModelT:
        entity = model(**fields)
        async with self._lock:
            try:
                async with self._session.begin_nested():
                    self._session.add(entity)
                    await self._session.flush()
            except IntegrityError as exc:
                raise translate_integrity_error(exc, model.__name__, conflict_message) from exc
            await self._session.refresh(entity)
        log.debug("Created %r", entity)
        return entity

    async def find(self, model: type[ModelT], entity_id: int) -> ModelT | None:
        async with self._lock:
            return await self._session.get(model, entity_id)

    async def get(self, model: type[ModelT], entity_id: int) -> ModelT:
        entity = await self.find(model, entity_id)
        if entity is None:
            raise NotFound(f"{model.__name__} not found", {"id": entity_id})
        return entity

    async def find_by(self, model: type[ModelT], **criteria: Any) -> ModelT | None:
        stmt = select(model).filter_by(**criteria)
        async with self._lock:
            result = await self._session.execute(stmt)
            return result.scalars().first()

    async def list_all(self, model: type[ModelT], *order_by: Any) -> list[ModelT]:
        stmt = select(model).order_by(*(order_by or (model.id,)))
        async with self._lock:
            result = await self._session.execute(stmt)
            return list(result.scalars().all())

    async def update(self, entity: ModelT, *, conflict_message: str | None = None, **fields: Any) -> ModelT:
        label = type(entity).__name__
        async with self._lock:
            try:
                async with self._session.begin_nested():
                    for key, value in fields.items():
                        setattr(entity, key, value)
                    await self._session.flush()
            except IntegrityError as exc:
                raise translate_integrity_error(exc, label, conflict_message) from exc
            await self._session.refresh(entity)
        return entity

    async def delete(self, model: type, entity_id: int) -> None:
        """Delete one entity; relation rows referencing it cascade away."""
        async with self._lock:
            await self._delete_locked(model, entity_id)

    async def _delete_locked(self, model: type, entity_id: int) -> None:
        entity = await self._session.get(model, entity_id)
        if entity is None:
            raise NotFound(f"{model.__name__} not found", {"id": entity_id})
        await self._session.delete(entity)
        await self._session.flush()
        log.info("Deleted %s %s", model.__name__, entity_id)

    async def delete_module(self, module_id: int) -> None:
        """
        Delete a module and its permissions.

        Rejected while any of the module's permissions is still granted to a
        role; ungrant first.
        """
        granted = (
            select(func.count())
            .select_from(grants)
            .join(Permission, Permission.id == grants.c.permission_id)
            .where(Permission.module_id == module_id)
        )
        async with self._lock:
            if await self._session.get(Module, module_id) is None:
                raise NotFound("Module not found", {"id": module_id})
            count = (await self._session.execute(granted)).scalar_one()
            if count:
                raise DependencyInUse(
                    "Cannot delete module with permissions assigned to roles. "
                    "Remove permissions from roles first.",
                    {"id": module_id, "granted_permissions": count},
                )
            await self._delete_locked(Module, module_id)

    async def fetch_all(self, stmt) -> list:
        async with self._lock:
            result = await self._session.execute(stmt)
            return list(result.all())

    async def fetch_first(self, stmt):
        async with self._lock:
            result = await self._session.execute(stmt)
            return result.first()

    async def existing_ids(self, model: type, ids: Iterable[int]) -> set[int]:
        wanted = set(ids)
        if not wanted:
            return set()
        stmt = select(model.id).where(model.id.in_(wanted))
        async with self._lock:
            result = await self._session.execute(stmt)
            return set(result.scalars().all())

    async def module_permissions(self, module_id: int) -> list[Permission]:
        stmt = select(Permission).where(Permission.module_id == module_id).order_by(Permission.action)
        async with self._lock:
            result = await self._session.execute(stmt)
            return list(result.scalars().all())

    async def module_permission_counts(self) -> dict[int, int]:
        stmt = select(Permission.module_id, func.count()).group_by(Permission.module_id)
        async with self._lock:
            result = await self._session.execute(stmt)
            return {module_id: count for module_id, count in result.all()}

    # ------------------------------------------------------------------
    # Relation pairs
    # ------------------------------------------------------------------

    async def add_pair(self, relation: Relation, anchor_id: int, counterpart_id: int) -> bool:
        """
        Insert one pair. Returns False when the pair already existed: re-adding
        is absorbed, never an error.
        """
        pair = {relation.anchor_key: anchor_id, relation.counterpart_key: counterpart_id}
        existing = select(relation.table).where(
            relation.anchor_column == anchor_id,
            relation.counterpart_column == counterpart_id,
        )
        async with self._lock:
            try:
                async with self._session.begin_nested():
                    if (await self._session.execute(existing)).first() is not None:
                        return False
                    await self._session.execute(insert(relation.table).values(**pair))
            except IntegrityError as exc:
                raise translate_integrity_error(exc, relation.counterpart_label) from exc
        return True

    async def remove_pair(self, relation: Relation, anchor_id: int, counterpart_id: int) -> bool:
        stmt = delete(relation.table).where(
            relation.anchor_column == anchor_id,
            relation.counterpart_column == counterpart_id,
        )
        async with self._lock:
            result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def counterparts(self, relation: Relation, anchor_id: int) -> list:
        model = relation.counterpart_model
        stmt = (
            select(model)
            .join(relation.table, relation.counterpart_column == model.id)
            .where(relation.anchor_column == anchor_id)
            .order_by(model.id)
        )
        async with self._lock:
            result = await self._session.execute(stmt)
            return list(result.scalars().unique().all())

    async def anchors(self, relation: Relation, counterpart_id: int) -> list:
        model = relation.anchor_model
        stmt = (
            select(model)
            .join(relation.table, relation.anchor_column == model.id)
            .where(relation.counterpart_column == counterpart_id)
            .order_by(model.id)
        )
        async with self._lock:
            result = await self._session.execute(stmt)
            return list(result.scalars().unique().all())

    async def group_names_by_user(self) -> dict[int, list[str]]:
        stmt = (
            select(memberships.c.user_id, Group.name)
            .join(Group, Group.id == memberships.c.group_id)
            .order_by(memberships.c.user_id, Group.name)
        )
        names: dict[int, list[str]] = {}
        for user_id, group_name in await self.fetch_all(stmt):
            names.setdefault(user_id, []).append(group_name)
        return names

    async def pair_counts(self, relation: Relation, by: str = "anchor") -> dict[int, int]:
        """Number of pairs per anchor id (or per counterpart id with ``by="counterpart"``)."""
        column = relation.anchor_column if by == "anchor" else relation.counterpart_column
        stmt = select(column, func.count()).group_by(column)
        async with self._lock:
            result = await self._session.execute(stmt)
            return {key: count for key, count in result.all()}

    # ------------------------------------------------------------------
    # Transaction control
    # ------------------------------------------------------------------

    async def begin_savepoint(self) -> AsyncSessionTransaction:
        """
        Open a SAVEPOINT inside the current transaction. Releasing or rolling
        it back never touches work done before it was opened.
        """
        async with self._lock:
            return await self._session.begin_nested()

    async def release_savepoint(self, savepoint: AsyncSessionTransaction) -> None:
        async with self._lock:
            await savepoint.commit()

    async def rollback_savepoint(self, savepoint: AsyncSessionTransaction) -> None:
        async with self._lock:
            await savepoint.rollback()

    async def commit(self) -> None:
        async with self._lock:
            await self._session.commit()

    async def rollback(self) -> None:
        async with self._lock:
            await self._session.rollback()
