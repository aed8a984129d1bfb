"""
Group, Role, Module and Permission models plus the three relation tables.

Permissions reach users only through the chain
    users -> memberships -> groups -> role_assignments -> roles -> grants -> permissions
There is no role inheritance and no wildcard permission.
"""
import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, IntegerIdMixin, TimestampMixin


class Action(str, enum.Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


# ============================================================================
# Relation Tables
# ============================================================================
# Pure pairs: the composite primary key is the uniqueness constraint and both
# foreign keys cascade, so deleting either endpoint removes the pair.

# User-Group relationship
memberships = Table(
    "memberships",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("group_id", Integer, ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True, index=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Group-Role relationship
role_assignments = Table(
    "role_assignments",
    Base.metadata,
    Column("group_id", Integer, ForeignKey("groups.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True, index=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Role-Permission relationship
grants = Table(
    "grants",
    Base.metadata,
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Integer, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True, index=True),
    Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
)


# ============================================================================
# Entities
# ============================================================================

class Group(Base, IntegerIdMixin, TimestampMixin):
    """
    A set of users sharing the same roles.
    Examples: Finance, Support, Administrators
    """
    __tablename__ = "groups"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Group(id={self.id}, name={self.name!r})>"


class Role(Base, IntegerIdMixin, TimestampMixin):
    """
    A named bundle of permissions, attached to groups.
    Examples: Administrator, Auditor, Editor
    """
    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r})>"


class Module(Base, IntegerIdMixin, TimestampMixin):
    """A named resource domain that permissions are scoped to (e.g. "Users")."""
    __tablename__ = "modules"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Module(id={self.id}, name={self.name!r})>"


class Permission(Base, IntegerIdMixin, TimestampMixin):
    """
    An action on a module.

    Identity is the (module_id, action) pair; the description is a free-text
    label and never takes part in lookups.
    """
    __tablename__ = "permissions"
    __table_args__ = (
        UniqueConstraint("action", "module_id", name="uq_permissions_action_module"),
        CheckConstraint(
            "action IN ('create', 'read', 'update', 'delete')",
            name="ck_permissions_action",
        ),
    )

    action: Mapped[str] = mapped_column(String(10), nullable=False)
    module_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("modules.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    module: Mapped["Module"] = relationship("Module", lazy="joined", innerjoin=True)

    @property
    def module_name(self) -> str:
        return self.module.name

    def __repr__(self) -> str:
        return f"<Permission(id={self.id}, action={self.action}, module_id={self.module_id})>"
