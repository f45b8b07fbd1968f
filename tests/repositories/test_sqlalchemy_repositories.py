# tests/repositories/test_sqlalchemy_repositories.py
from datetime import datetime, timedelta

from unittest.mock import patch

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from rbac_engine.config import Config
from rbac_engine.database import models
from rbac_engine.database.database import Base
from rbac_engine.database.db_init import seed_data
from rbac_engine.repositories.sqlalchemy import (
    SqlalchemyAccountRepository, SqlalchemyPermissionGroupRepository,
    SqlalchemyPermissionRepository, SqlalchemyRoleRepository
)
from rbac_engine.services.authorization_service import AuthorizationService, TableRef
from rbac_engine.services.exceptions import ValidationError
from rbac_engine.services.permission_cache import PermissionSetCache
from rbac_engine.services.permission_service import PermissionService
from rbac_engine.services.role_service import RoleService

# ===================================================================
#  Fixture 설정 (인메모리 SQLite)
# ===================================================================

@pytest.fixture
def engine():
    engine = create_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()

@pytest.fixture
def db_session(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()

@pytest.fixture
def catalog(db_session):
    """계정 두 개, 역할 두 개, 직접 권한/그룹 권한/만료된 권한이 있는 카탈로그."""
    viewer = models.Role(name='Viewer', rank=1)
    editor = models.Role(name='Editor', rank=50)
    alice = models.Account(email='alice@example.com', auth_user_id='u-alice')
    bob = models.Account(email='bob@example.com')
    read_public = models.Permission(name='read-public', permission_type='data', scope='table',
                                    schema_name='public', table_name='*', action='select')
    write_uploads = models.Permission(name='write-uploads', permission_type='data', scope='storage', action='*',
                                      resource_metadata={'bucket_name': 'assets', 'path_pattern': 'uploads/*'})
    expired = models.Permission(name='expired', permission_type='data', scope='storage', action='delete',
                                resource_metadata={'bucket_name': 'assets', 'path_pattern': '*'})
    manage_roles = models.Permission(name='manage-roles', permission_type='system', system_resource='role', action='*')
    group = models.PermissionGroup(name='Uploaders')
    db_session.add_all([viewer, editor, alice, bob, read_public, write_uploads, expired, manage_roles, group])
    db_session.commit()

    db_session.add_all([
        models.RolePermission(role_id=viewer.id, permission_id=read_public.id),
        models.RolePermission(role_id=viewer.id, permission_id=expired.id,
                              valid_until=datetime.now() - timedelta(days=1)),
        models.RolePermission(role_id=editor.id, permission_id=manage_roles.id),
        models.PermissionGroupPermission(group_id=group.id, permission_id=write_uploads.id),
        models.RolePermissionGroup(role_id=viewer.id, group_id=group.id),
        models.AccountRole(account_id=alice.id, role_id=viewer.id),
        models.AccountRole(account_id=bob.id, role_id=editor.id),
    ])
    db_session.commit()
    return {
        'viewer': viewer, 'editor': editor, 'alice': alice, 'bob': bob, 'group': group,
        'read_public': read_public, 'write_uploads': write_uploads, 'expired': expired, 'manage_roles': manage_roles,
    }


# ===================================================================
#  유효 권한 집합 조회 테스트
# ===================================================================
class TestEffectivePermissions:
    def test_direct_and_group_permissions_without_expired(self, db_session, catalog):
        repo = SqlalchemyPermissionRepository(db_session)

        names = [p.name for p in repo.find_effective_permissions(catalog['alice'].id)]

        assert sorted(names) == ['read-public', 'write-uploads']

    def test_loaded_in_a_single_statement(self, engine, db_session, catalog):
        """유효 권한 집합이 하나의 SQL 문으로 조회되는지 테스트합니다."""
        # === Arrange ===
        repo = SqlalchemyPermissionRepository(db_session)
        alice_id = catalog['alice'].id
        statements = []
        event.listen(engine, "before_cursor_execute", lambda *args: statements.append(args[2]))

        # === Act ===
        repo.find_effective_permissions(alice_id, permission_type='data', scope='storage', actions=['delete'])

        # === Assert ===
        assert len(statements) == 1

    def test_filters_by_type_scope_and_action(self, db_session, catalog):
        repo = SqlalchemyPermissionRepository(db_session)
        alice_id = catalog['alice'].id

        storage = repo.find_effective_permissions(alice_id, permission_type='data', scope='storage', actions=['update'])
        tables = repo.find_effective_permissions(alice_id, permission_type='data', scope='table', actions=['insert'])
        system = repo.find_effective_permissions(alice_id, permission_type='system')

        # '*' 액션 권한은 모든 액션 요청에 포함됨
        assert [p.name for p in storage] == ['write-uploads']
        assert tables == []
        assert system == []

    def test_expired_assignment_removes_everything(self, db_session, catalog):
        assignment = db_session.query(models.AccountRole).filter_by(account_id=catalog['bob'].id).one()
        assignment.valid_until = datetime.now() - timedelta(minutes=1)
        db_session.commit()

        repo = SqlalchemyPermissionRepository(db_session)

        assert repo.find_effective_permissions(catalog['bob'].id) == []
        assert SqlalchemyAccountRepository(db_session).get_max_role_rank(catalog['bob'].id) is None

    def test_usage_queries(self, db_session, catalog):
        repo = SqlalchemyPermissionRepository(db_session)

        assert repo.get_max_rank_of_roles_using(catalog['manage_roles'].id) == 50
        assert repo.get_max_rank_of_roles_using(catalog['write_uploads'].id) is None
        assert repo.is_in_use(catalog['write_uploads'].id)

        unused = repo.create(models.Permission(name='unused', permission_type='system',
                                               system_resource='log', action='select'))
        assert not repo.is_in_use(unused.id)


# ===================================================================
#  계정/역할/그룹 리포지토리 테스트
# ===================================================================
class TestAccountRepository:
    def test_max_rank_and_role_membership(self, db_session, catalog):
        repo = SqlalchemyAccountRepository(db_session)

        assert repo.get_max_role_rank(catalog['bob'].id) == 50
        assert repo.has_role(catalog['alice'].id, catalog['viewer'].id)
        assert not repo.has_role(catalog['alice'].id, catalog['editor'].id)

    def test_assign_role_replaces_existing_role(self, db_session, catalog):
        # === Arrange ===
        repo = SqlalchemyAccountRepository(db_session)
        alice = catalog['alice']

        # === Act ===
        repo.assign_role(alice, catalog['editor'], assigned_by=catalog['bob'].id)

        # === Assert ===
        assert repo.get_max_role_rank(alice.id) == 50
        assert not repo.has_role(alice.id, catalog['viewer'].id)
        assert db_session.query(models.AccountRole).filter_by(account_id=alice.id).count() == 1

    def test_revoke_role(self, db_session, catalog):
        repo = SqlalchemyAccountRepository(db_session)

        assert repo.revoke_role(catalog['alice'], catalog['viewer']) is True
        assert repo.revoke_role(catalog['alice'], catalog['viewer']) is False
        assert repo.get_max_role_rank(catalog['alice'].id) is None

    def test_list_members(self, db_session, catalog):
        repo = SqlalchemyAccountRepository(db_session)
        repo.create(models.Account(email='carol@example.com'))

        members = {m['email']: m for m in repo.list_members()}

        assert members['alice@example.com']['role'] == 'Viewer'
        assert members['bob@example.com']['rank'] == 50
        assert members['carol@example.com']['role'] is None


class TestRoleAndGroupRepositories:
    def test_role_links(self, db_session, catalog):
        # === Arrange ===
        roles = SqlalchemyRoleRepository(db_session)
        permissions = SqlalchemyPermissionRepository(db_session)
        editor, bob = catalog['editor'], catalog['bob']

        # === Act ===
        roles.add_permission(editor, catalog['read_public'])
        roles.add_permission_group(editor, catalog['group'])

        # === Assert ===
        names = sorted(p.name for p in permissions.find_effective_permissions(bob.id))
        assert names == ['manage-roles', 'read-public', 'write-uploads']
        assert roles.remove_permission_group(editor, catalog['group']) is True
        assert roles.remove_permission_group(editor, catalog['group']) is False
        assert roles.count_assignments(editor.id) == 1

    def test_group_queries(self, db_session, catalog):
        groups = SqlalchemyPermissionGroupRepository(db_session)
        group = catalog['group']

        assert [p.name for p in groups.list_permissions(group.id)] == ['write-uploads']
        assert groups.get_max_rank_of_roles_using(group.id) == 1
        assert groups.account_has_group(catalog['alice'].id, group.id)
        assert not groups.account_has_group(catalog['bob'].id, group.id)

        assert groups.remove_permission(group, catalog['write_uploads']) is True
        assert groups.list_permissions(group.id) == []


# ===================================================================
#  기본 데이터와 평가기 통합 테스트
# ===================================================================
class TestSeedData:
    def test_seed_is_idempotent(self, db_session):
        assert seed_data(db_session) is True
        assert seed_data(db_session) is False
        assert db_session.query(models.Role).count() == 3

    def test_seeded_root_account_is_fully_authorized(self, db_session):
        # === Arrange ===
        seed_data(db_session)
        root = db_session.query(models.Account).filter_by(email='root@example.com').one()
        service = AuthorizationService(
            SqlalchemyPermissionRepository(db_session),
            account_repo=SqlalchemyAccountRepository(db_session),
            path_syntax='segment',
        )

        # === Act & Assert ===
        assert service.has_system_permission(root.id, 'role', 'delete')
        assert service.has_permission(root.id, 'public', 'update', TableRef('orders'))
        assert not service.has_permission(root.id, 'auth', 'update', TableRef('users'))
        decisions = service.bulk_evaluate(root.id, 'assets', 'delete', ['a.png', 'b/c.png'], parent_path='')
        assert all(d.is_full() for d in decisions.values())


# ===================================================================
#  관리 서비스 통합 테스트 (실제 리포지토리)
# ===================================================================
def build_services(db_session, **authorization_kwargs):
    """실제 SQLAlchemy 리포지토리로 평가기와 관리 서비스를 구성합니다. 캐시는 따로 넘기지 않습니다."""
    accounts = SqlalchemyAccountRepository(db_session)
    permissions = SqlalchemyPermissionRepository(db_session)
    groups = SqlalchemyPermissionGroupRepository(db_session)
    authz = AuthorizationService(permissions, account_repo=accounts, path_syntax='segment', **authorization_kwargs)
    roles = RoleService(accounts, SqlalchemyRoleRepository(db_session), permissions, groups, authz)
    permission_service = PermissionService(permissions, groups, accounts, authz)
    return authz, roles, permission_service


class TestAdminMutationsWithCache:
    def test_services_share_the_evaluator_cache(self, db_session):
        with patch.object(Config, 'PERMISSION_CACHE_ENABLED', True):
            authz, roles, permission_service = build_services(db_session)

        assert isinstance(authz.cache, PermissionSetCache)
        assert roles.cache is authz.cache
        assert permission_service.cache is authz.cache

    def test_revoked_group_is_not_served_from_cache(self, db_session, catalog):
        """캐시가 켜진 상태에서 역할의 권한 그룹을 회수하면 다음 평가부터 거부되는지 테스트합니다."""
        # === Arrange ===
        with patch.object(Config, 'PERMISSION_CACHE_ENABLED', True):
            authz, roles, _ = build_services(db_session)
        alice_id, bob_id = catalog['alice'].id, catalog['bob'].id
        viewer_id, group_id = catalog['viewer'].id, catalog['group'].id
        assert authz.has_permission(alice_id, 'assets', 'delete', 'uploads/a.png')

        # === Act ===
        assert roles.revoke_permission_group(bob_id, viewer_id, group_id) is True

        # === Assert ===
        assert not authz.has_permission(alice_id, 'assets', 'delete', 'uploads/a.png')
        assert authz.has_permission(alice_id, 'public', 'select', TableRef('orders'))

    def test_removed_group_permission_is_not_served_from_cache(self, db_session, catalog):
        # === Arrange ===
        authz, _, permission_service = build_services(db_session, cache=PermissionSetCache())
        alice_id, bob_id = catalog['alice'].id, catalog['bob'].id
        group = catalog['group']
        manage_permissions = models.Permission(name='manage-permissions', permission_type='system',
                                               system_resource='permission', action='*')
        db_session.add(manage_permissions)
        db_session.commit()
        db_session.add(models.RolePermission(role_id=catalog['editor'].id, permission_id=manage_permissions.id))
        db_session.commit()
        assert authz.has_permission(alice_id, 'assets', 'update', 'uploads/a.png')

        # === Act ===
        assert permission_service.remove_permission_from_group(bob_id, group.id, catalog['write_uploads'].id) is True

        # === Assert ===
        assert not authz.has_permission(alice_id, 'assets', 'update', 'uploads/a.png')


class TestRoleUpdateValidation:
    def test_rejected_rename_leaves_role_unchanged(self, db_session):
        """중복 이름으로 update_role이 실패하면, 같은 세션의 다음 커밋에 변경된 rank가 남지 않는지 테스트합니다."""
        # === Arrange ===
        seed_data(db_session)
        _, roles, _ = build_services(db_session)
        root_id = db_session.query(models.Account).filter_by(email='root@example.com').one().id
        viewer_id = db_session.query(models.Role).filter_by(name='Viewer').one().id

        # === Act ===
        with pytest.raises(ValidationError) as exc_info:
            roles.update_role(root_id, viewer_id, name='Admin', rank=80)
        roles.create_role(root_id, 'Auditor', 10)

        # === Assert ===
        assert exc_info.value.field == 'name'
        db_session.expire_all()
        viewer = db_session.query(models.Role).filter_by(id=viewer_id).one()
        assert (viewer.name, viewer.rank) == ('Viewer', 1)
