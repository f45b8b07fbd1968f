from .account import IAccountRepository
from .role import IRoleRepository
from .permission import IPermissionRepository
from .permission_group import IPermissionGroupRepository
from .storage import IObjectStorage, StorageEntry
