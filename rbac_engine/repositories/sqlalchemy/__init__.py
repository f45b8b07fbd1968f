from .sqlalchemy_account_repository import SqlalchemyAccountRepository
from .sqlalchemy_role_repository import SqlalchemyRoleRepository
from .sqlalchemy_permission_repository import SqlalchemyPermissionRepository
from .sqlalchemy_permission_group_repository import SqlalchemyPermissionGroupRepository
