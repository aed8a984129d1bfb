"""
Pydantic schemas for access control.

Request and response models for groups, roles, modules, permissions, bulk
assignments and permission checks.
"""
from datetime import datetime
from typing import Generic, List, Optional, TypeVar
from pydantic import BaseModel, Field, ConfigDict

from app.features.permissions.models import Action
from app.features.users.schemas import UserPublic


CounterpartT = TypeVar("CounterpartT")


# ============================================================================
# Module Schemas
# ============================================================================

class ModuleBase(BaseModel):
    """Base module schema."""
    name: str = Field(..., min_length=1, max_length=100, description="Unique module name (e.g., 'Billing')")
    description: Optional[str] = Field(None, max_length=255, description="Module description")


class ModuleCreate(ModuleBase):
    """Schema for creating a new module."""
    with_default_permissions: bool = Field(
        True, description="Also create the create/read/update/delete permissions for this module"
    )


class ModuleUpdate(BaseModel):
    """Schema for updating a module."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=255)


class ModuleResponse(ModuleBase):
    """Schema for module response."""
    id: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ModuleListItem(ModuleResponse):
    permission_count: int = 0


# ============================================================================
# Permission Schemas
# ============================================================================

class PermissionBase(BaseModel):
    """Base permission schema."""
    action: Action = Field(..., description="One of create, read, update, delete")
    module_id: int = Field(..., ge=1, description="Owning module")
    description: Optional[str] = Field(None, max_length=255, description="Free-text label, not part of identity")


class PermissionCreate(PermissionBase):
    """Schema for creating a new permission."""


class PermissionUpdate(BaseModel):
    """Schema for updating a permission."""
    action: Optional[Action] = None
    module_id: Optional[int] = Field(None, ge=1)
    description: Optional[str] = Field(None, max_length=255)


class PermissionResponse(PermissionBase):
    """Schema for permission response."""
    id: int
    module_name: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PermissionListItem(PermissionResponse):
    role_count: int = 0


class ModuleDetail(ModuleResponse):
    """Schema for module with its permissions."""
    permissions: List[PermissionResponse] = []


# ============================================================================
# Role Schemas
# ============================================================================

class RoleBase(BaseModel):
    """Base role schema."""
    name: str = Field(..., min_length=1, max_length=100, description="Unique role name")
    description: Optional[str] = Field(None, max_length=255, description="Role description")


class RoleCreate(RoleBase):
    """Schema for creating a new role."""


class RoleUpdate(BaseModel):
    """Schema for updating a role."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=255)


class RoleResponse(RoleBase):
    """Schema for role response."""
    id: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RoleListItem(RoleResponse):
    group_count: int = 0
    permission_count: int = 0


class PermissionDetail(PermissionResponse):
    """Schema for permission with the roles granting it."""
    roles: List[RoleResponse] = []


# ============================================================================
# Group Schemas
# ============================================================================

class GroupBase(BaseModel):
    """Base group schema."""
    name: str = Field(..., min_length=1, max_length=100, description="Unique group name")
    description: Optional[str] = Field(None, max_length=255, description="Group description")


class GroupCreate(GroupBase):
    """Schema for creating a new group."""


class GroupUpdate(BaseModel):
    """Schema for updating a group."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=255)


class GroupResponse(GroupBase):
    """Schema for group response."""
    id: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class GroupListItem(GroupResponse):
    member_count: int = 0
    role_count: int = 0


class GroupDetail(GroupResponse):
    """Schema for group with its users and roles."""
    users: List[UserPublic] = []
    roles: List[RoleResponse] = []


class RoleDetail(RoleResponse):
    """Schema for role with its permissions and the groups holding it."""
    permissions: List[PermissionResponse] = []
    groups: List[GroupResponse] = []


# ============================================================================
# Assignment Schemas
# ============================================================================

class AssignUsersToGroup(BaseModel):
    """Schema for adding users to a group."""
    user_ids: List[int] = Field(..., description="User IDs (non-empty)")


class AssignRolesToGroup(BaseModel):
    """Schema for assigning roles to a group."""
    role_ids: List[int] = Field(..., description="Role IDs (non-empty)")


class AssignPermissionsToRole(BaseModel):
    """Schema for granting permissions to a role."""
    permission_ids: List[int] = Field(..., description="Permission IDs (non-empty)")


class AnchorView(BaseModel, Generic[CounterpartT]):
    """The anchor entity with its full, refreshed set of counterparts."""
    id: int
    counterparts: List[CounterpartT] = []


class AssignmentResponse(BaseModel, Generic[CounterpartT]):
    """Bulk assignment where every item succeeded."""
    message: str
    added_count: int
    anchor: AnchorView[CounterpartT]


class AssignmentItemError(BaseModel):
    counterpart_id: int
    reason: str


class PartialAssignmentResponse(BaseModel):
    """Bulk assignment where some items failed."""
    message: str
    added_count: int
    errors: List[AssignmentItemError]


# ============================================================================
# Permission Check Schemas
# ============================================================================

class EffectivePermissionResponse(BaseModel):
    permission_id: int
    module_id: int
    module_name: str
    action: str

    model_config = ConfigDict(from_attributes=True)


class UserPermissionsResponse(BaseModel):
    """All permissions a user reaches through their groups."""
    user_id: int
    permissions: List[EffectivePermissionResponse] = []


class PermissionCheckRequest(BaseModel):
    """Schema for checking if a user has a permission."""
    module_name: str = Field(..., min_length=1, description="Module name")
    action: Action = Field(..., description="Action")
    target_user_id: Optional[int] = Field(None, ge=1, description="User to check (defaults to the caller)")


class PermissionCheckResponse(BaseModel):
    """Schema for permission check response."""
    has_permission: bool
    message: str
