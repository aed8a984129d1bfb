"""
Access control feature module.

Role-based access control where users gain permissions only through the
groups they belong to: memberships -> role assignments -> grants.
"""
