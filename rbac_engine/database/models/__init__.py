from .account import Account
from .role import Role
from .permission import (
    Action,
    Permission,
    PermissionScope,
    PermissionType,
    SystemResource,
    WILDCARD,
)
from .permission_group import PermissionGroup
from .association import AccountRole, RolePermission, RolePermissionGroup, PermissionGroupPermission
