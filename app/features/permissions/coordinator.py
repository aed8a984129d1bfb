"""
Bulk attach/detach over the relation tables.

An attach runs in two phases:

1. Existence gate: every requested counterpart must exist, otherwise the
   whole request is rejected and nothing is written.
2. Mutation phase: one idempotent pair insert per counterpart, dispatched
   together and joined before any result is built. Per-item failures are
   collected as ``ItemError``s instead of aborting the batch.

The mutation phase runs inside its own SAVEPOINT. With ``atomic=True`` (the
default, see ``ASSIGNMENT_ATOMIC``) a batch that collected any item error is
rolled back to that savepoint, leaving earlier work in the caller's
transaction intact. With ``atomic=False`` the items that succeeded stay
applied. Committing is left to whoever owns the session.
"""
import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field

from app.core import config
from app.core.errors import AccessControlError, InvalidArgument, NotFound
from app.features.permissions.store import EntityStore, Relation
from app.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class ItemError:
    counterpart_id: int
    reason: str


@dataclass
class AssignmentResult:
    relation: Relation
    anchor_id: int
    added_count: int
    counterparts: list = field(default_factory=list)
    errors: list[ItemError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


class AssignmentCoordinator:

    def __init__(self, store: EntityStore, atomic: bool | None = None):
        self._store = store
        self._atomic = config.ASSIGNMENT_ATOMIC if atomic is None else atomic

    @property
    def atomic(self) -> bool:
        return self._atomic

    async def attach(self, relation: Relation, anchor_id: int, counterpart_ids: Sequence[int]) -> AssignmentResult:
        label = relation.counterpart_label
        if not counterpart_ids:
            raise InvalidArgument(f"{label} IDs array is required")

        # Repeated ids in one request are one item
        requested = list(dict.fromkeys(counterpart_ids))

        await self._store.get(relation.anchor_model, anchor_id)
        found = await self._store.existing_ids(relation.counterpart_model, requested)
        missing = [counterpart_id for counterpart_id in requested if counterpart_id not in found]
        if missing:
            raise InvalidArgument(
                f"Some {label.lower()}s do not exist: {', '.join(str(i) for i in missing)}",
                {"missing_ids": missing},
            )

        savepoint = await self._store.begin_savepoint()
        outcomes = await asyncio.gather(
            *(self._store.add_pair(relation, anchor_id, counterpart_id) for counterpart_id in requested),
            return_exceptions=True,
        )

        added_count = 0
        errors: list[ItemError] = []
        for counterpart_id, outcome in zip(requested, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    await self._store.rollback_savepoint(savepoint)
                    raise outcome
                errors.append(ItemError(counterpart_id, self._describe_failure(relation, counterpart_id, outcome)))
            elif outcome:
                added_count += 1

        if errors:
            if self._atomic:
                await self._store.rollback_savepoint(savepoint)
                added_count = 0
            else:
                await self._store.release_savepoint(savepoint)
            log.warning(
                "%s on %s %s: %d of %d items failed (atomic=%s)",
                relation.name, relation.anchor_label.lower(), anchor_id,
                len(errors), len(requested), self._atomic,
            )
            return AssignmentResult(relation, anchor_id, added_count, errors=errors)

        await self._store.release_savepoint(savepoint)
        counterparts = await self._store.counterparts(relation, anchor_id)
        log.info(
            "%s on %s %s: %d new of %d requested",
            relation.name, relation.anchor_label.lower(), anchor_id, added_count, len(requested),
        )
        return AssignmentResult(relation, anchor_id, added_count, counterparts=counterparts)

    async def detach(self, relation: Relation, anchor_id: int, counterpart_id: int) -> None:
        """Remove one pair. Removing an absent pair is reported as NotFound."""
        if not await self._store.remove_pair(relation, anchor_id, counterpart_id):
            raise NotFound(
                f"{relation.counterpart_label} not found in {relation.anchor_label.lower()}",
                {relation.anchor_key: anchor_id, relation.counterpart_key: counterpart_id},
            )
        log.info("%s removed: %s %s / %s %s", relation.name, relation.anchor_label.lower(), anchor_id,
                 relation.counterpart_label.lower(), counterpart_id)

    @staticmethod
    def _describe_failure(relation: Relation, counterpart_id: int, exc: Exception) -> str:
        if isinstance(exc, AccessControlError):
            return exc.message
        log.error("Error assigning %s %s", relation.counterpart_label.lower(), counterpart_id, exc_info=exc)
        return f"Error assigning {relation.counterpart_label.lower()} {counterpart_id}"
