import logging

from rbac_engine.config import configure_logging
from .database import engine, SessionLocal, Base
from .models import (
    Account, AccountRole, Permission, PermissionGroup, PermissionGroupPermission,
    Role, RolePermission, RolePermissionGroup,
)

logger = logging.getLogger(__name__)

ADMIN_EMAIL = 'root@example.com'


def _system(name, resource, action):
    return Permission(name=name, permission_type='system', system_resource=resource, action=action)


def seed_data(db):
    """
    기본 역할, 권한, 권한 그룹, 관리자 계정을 삽입합니다.
    계정이 하나라도 있으면 아무것도 하지 않고 False를 반환합니다.
    """
    if db.query(Account).first():
        logger.info("Seed data already exists; skipping.")
        return False

    # Roles
    root_role = Role(name='Root', description='Full control over the console', rank=100)
    admin_role = Role(name='Admin', description='Administers accounts and data', rank=90)
    viewer_role = Role(name='Viewer', description='Read-only access', rank=1)
    db.add_all([root_role, admin_role, viewer_role])

    # System permissions
    system_permissions = [
        _system('Manage accounts', 'account', '*'),
        _system('Manage roles', 'role', '*'),
        _system('Manage permissions', 'permission', '*'),
        _system('View audit logs', 'log', 'select'),
    ]
    db.add_all(system_permissions)

    # Data permissions
    read_public = Permission(
        name='Read public tables', permission_type='data', scope='table',
        schema_name='public', table_name='*', action='select',
    )
    write_public = Permission(
        name='Write public tables', permission_type='data', scope='table',
        schema_name='public', table_name='*', action='*',
    )
    all_storage = Permission(
        name='Full storage access', permission_type='data', scope='storage', action='*',
        resource_metadata={'bucket_name': '*', 'path_pattern': '*'},
    )
    own_uploads = Permission(
        name='Manage own uploads', permission_type='data', scope='storage', action='*',
        resource_metadata={'bucket_name': 'assets', 'path_pattern': 'users/{{account_id}}/*'},
    )
    read_assets = Permission(
        name='Read assets', permission_type='data', scope='storage', action='select',
        resource_metadata={'bucket_name': 'assets', 'path_pattern': '*'},
    )
    db.add_all([read_public, write_public, all_storage, own_uploads, read_assets])

    # Admin account
    admin = Account(email=ADMIN_EMAIL, is_active=True)
    db.add(admin)

    # 변경사항을 커밋하여 각 객체의 id를 할당받습니다.
    db.commit()

    group = PermissionGroup(name='Data editors', description='Read and write public data', created_by=admin.id)
    db.add(group)
    db.commit()

    db.add_all([PermissionGroupPermission(group_id=group.id, permission_id=p.id) for p in (read_public, write_public)])

    for permission in system_permissions + [all_storage]:
        db.add(RolePermission(role_id=root_role.id, permission_id=permission.id))
    for permission in system_permissions[:2]:
        db.add(RolePermission(role_id=admin_role.id, permission_id=permission.id))
    db.add(RolePermissionGroup(role_id=root_role.id, group_id=group.id))
    db.add(RolePermissionGroup(role_id=admin_role.id, group_id=group.id))
    db.add(RolePermission(role_id=admin_role.id, permission_id=own_uploads.id))
    db.add(RolePermission(role_id=viewer_role.id, permission_id=read_public.id))
    db.add(RolePermission(role_id=viewer_role.id, permission_id=read_assets.id))

    db.add(AccountRole(account_id=admin.id, role_id=root_role.id))
    db.commit()
    return True


def initialize_db():
    """
    DB와 테이블을 생성하고, 기본 데이터를 삽입합니다.
    SQLAlchemy 모델을 사용하여 모든 작업을 수행합니다.
    """
    logger.info("Initializing database")

    # 모든 테이블을 생성합니다. (이미 존재하면 생성하지 않음)
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        if seed_data(db):
            logger.info("Seed data inserted")
    except Exception:
        logger.exception("Database initialization failed")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == '__main__':
    configure_logging()
    initialize_db()
