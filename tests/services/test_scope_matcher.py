# tests/services/test_scope_matcher.py
import pytest

from rbac_engine.database import models
from rbac_engine.services.scope_matcher import (
    PATH_SYNTAX_LIKE, PATH_SYNTAX_SEGMENT, StorageTarget, SystemTarget, TableTarget,
    action_matches, matches, path_matches, resolve_placeholders
)


def system_permission(resource, action='*'):
    return models.Permission(id=1, name='sys', permission_type='system', system_resource=resource, action=action)


def table_permission(schema='public', table='*', column=None, action='select'):
    return models.Permission(
        id=2, name='tbl', permission_type='data', scope='table',
        schema_name=schema, table_name=table, column_name=column, action=action,
    )


def storage_permission(bucket='assets', pattern='uploads/*', action='delete'):
    return models.Permission(
        id=3, name='sto', permission_type='data', scope='storage', action=action,
        resource_metadata={'bucket_name': bucket, 'path_pattern': pattern},
    )


# ===================================================================
#  액션 매칭 테스트
# ===================================================================
class TestActionMatching:
    def test_wildcard_satisfies_every_action(self):
        for action in ('select', 'insert', 'update', 'delete'):
            assert action_matches('*', action)

    def test_concrete_action_matches_only_itself(self):
        assert action_matches('select', 'select')
        assert not action_matches('select', 'insert')


# ===================================================================
#  시스템 권한 테스트
# ===================================================================
class TestSystemScope:
    def test_resource_must_match_exactly(self):
        permission = system_permission('role', 'update')

        assert matches(permission, SystemTarget('role', 'update'))
        assert not matches(permission, SystemTarget('account', 'update'))
        assert not matches(permission, SystemTarget('role', 'delete'))

    def test_system_permission_never_covers_data_targets(self):
        permission = system_permission('table')

        assert not matches(permission, TableTarget('public', 'orders', 'select'))
        assert not matches(permission, StorageTarget('assets', 'a.png', 'select'))

    def test_data_permission_never_covers_system_targets(self):
        assert not matches(table_permission(action='*'), SystemTarget('table', 'select'))


# ===================================================================
#  테이블 범위 테스트
# ===================================================================
class TestTableScope:
    def test_table_wildcard_covers_every_table_in_schema(self):
        permission = table_permission(schema='public', table='*', action='select')

        assert matches(permission, TableTarget('public', 'orders', 'select'), protected_schemas=())
        assert not matches(permission, TableTarget('public', 'orders', 'insert'), protected_schemas=())
        assert not matches(permission, TableTarget('sales', 'orders', 'select'), protected_schemas=())

    def test_schema_wildcard(self):
        permission = table_permission(schema='*', table='orders', action='*')

        assert matches(permission, TableTarget('sales', 'orders', 'update'), protected_schemas=())
        assert not matches(permission, TableTarget('sales', 'items', 'update'), protected_schemas=())

    def test_column_permission_matches_only_that_column(self):
        permission = table_permission(table='users', column='email')

        assert matches(permission, TableTarget('public', 'users', 'select', column='email'), protected_schemas=())
        assert not matches(permission, TableTarget('public', 'users', 'select', column='phone'), protected_schemas=())
        # 컬럼 권한은 테이블 전체 요청을 허용하지 않음
        assert not matches(permission, TableTarget('public', 'users', 'select'), protected_schemas=())

    def test_column_wildcard_matches_any_named_column(self):
        permission = table_permission(table='users', column='*')

        assert matches(permission, TableTarget('public', 'users', 'select', column='phone'), protected_schemas=())
        assert not matches(permission, TableTarget('public', 'users', 'select'), protected_schemas=())

    def test_table_permission_covers_every_column(self):
        permission = table_permission(table='users')

        assert matches(permission, TableTarget('public', 'users', 'select', column='email'), protected_schemas=())

    def test_protected_schema_rejects_writes_even_with_wildcard(self):
        permission = table_permission(schema='*', table='*', action='*')

        assert matches(permission, TableTarget('auth', 'users', 'select'), protected_schemas={'auth'})
        for action in ('insert', 'update', 'delete'):
            assert not matches(permission, TableTarget('auth', 'users', action), protected_schemas={'auth'})

    def test_default_protected_schemas_come_from_config(self):
        permission = table_permission(schema='storage', table='objects', action='delete')

        assert not matches(permission, TableTarget('storage', 'objects', 'delete'))


# ===================================================================
#  스토리지 경로 패턴 테스트
# ===================================================================
class TestPathPatterns:
    @pytest.mark.parametrize("path, expected", [
        ("uploads/a.png", True),
        ("uploads/2024/a.png", True),
        ("/uploads/a.png/", True),
        ("uploads", False),
        ("public/b.png", False),
        ("uploadsx/a.png", False),
    ])
    def test_trailing_wildcard_matches_strict_descendants(self, path, expected):
        assert path_matches("uploads/*", path, syntax=PATH_SYNTAX_SEGMENT) is expected

    def test_inner_wildcard_stays_within_one_segment(self):
        assert path_matches("avatars/*.png", "avatars/me.png", syntax=PATH_SYNTAX_SEGMENT)
        assert not path_matches("avatars/*.png", "avatars/2024/me.png", syntax=PATH_SYNTAX_SEGMENT)
        assert not path_matches("avatars/*.png", "avatars/me.jpg", syntax=PATH_SYNTAX_SEGMENT)

    def test_bare_wildcard_matches_everything_including_root(self):
        assert path_matches("*", "", syntax=PATH_SYNTAX_SEGMENT)
        assert path_matches("*", "a/b/c.txt", syntax=PATH_SYNTAX_SEGMENT)

    def test_pattern_without_wildcard_is_exact(self):
        assert path_matches("docs/readme.md", "docs/readme.md", syntax=PATH_SYNTAX_SEGMENT)
        assert not path_matches("docs/readme.md", "docs/readme.md.bak", syntax=PATH_SYNTAX_SEGMENT)
        assert not path_matches("docs", "docs/readme.md", syntax=PATH_SYNTAX_SEGMENT)

    def test_like_syntax_crosses_segments(self):
        assert path_matches("avatars/*.png", "avatars/2024/me.png", syntax=PATH_SYNTAX_LIKE)
        assert path_matches("uploads/*", "uploads/2024/a.png", syntax=PATH_SYNTAX_LIKE)
        assert not path_matches("uploads/*", "public/a.png", syntax=PATH_SYNTAX_LIKE)

    def test_unknown_syntax_is_rejected(self):
        with pytest.raises(ValueError):
            path_matches("*", "a", syntax="glob")

    def test_placeholders_are_substituted(self):
        variables = {'account_id': '7'}

        assert resolve_placeholders("users/{{account_id}}/*", variables) == "users/7/*"
        assert path_matches("users/{{ account_id }}/*", "users/7/a.png", syntax=PATH_SYNTAX_SEGMENT, variables=variables)
        assert not path_matches("users/{{account_id}}/*", "users/8/a.png", syntax=PATH_SYNTAX_SEGMENT, variables=variables)

    def test_unresolved_placeholder_never_matches(self):
        assert not path_matches("users/{{user_id}}/*", "users/{{user_id}}/a.png",
                                syntax=PATH_SYNTAX_SEGMENT, variables={'account_id': '7'})

    @pytest.mark.parametrize("syntax", [PATH_SYNTAX_SEGMENT, PATH_SYNTAX_LIKE])
    def test_traversal_segment_never_matches(self, syntax):
        assert not path_matches("uploads/*", "uploads/../private/secret.png", syntax=syntax)
        assert not path_matches("*", "../secret.png", syntax=syntax)

    def test_placeholder_value_cannot_introduce_traversal(self):
        assert not path_matches("users/{{user_id}}/*", "users/../a.png",
                                syntax=PATH_SYNTAX_SEGMENT, variables={'user_id': '..'})


class TestStorageScope:
    def test_bucket_must_match_or_be_wildcard(self):
        permission = storage_permission(bucket='assets')
        any_bucket = storage_permission(bucket='*')
        target = StorageTarget('media', 'uploads/a.png', 'delete')

        assert not matches(permission, target, path_syntax=PATH_SYNTAX_SEGMENT)
        assert matches(any_bucket, target, path_syntax=PATH_SYNTAX_SEGMENT)

    def test_storage_permission_without_pattern_matches_nothing(self):
        permission = models.Permission(
            id=4, name='broken', permission_type='data', scope='storage', action='*',
            resource_metadata={'bucket_name': 'assets'},
        )

        assert not matches(permission, StorageTarget('assets', 'a.png', 'select'))

    def test_table_permission_never_covers_storage(self):
        assert not matches(table_permission(schema='*', action='*'), StorageTarget('assets', 'a.png', 'select'))
