# tests/utils/test_permission_validator.py
import pytest

from rbac_engine.services.exceptions import ValidationError
from rbac_engine.utils.permission_validator import is_protected_schema, validate_permission_definition

PROTECTED = {'auth', 'storage'}


def test_system_permission_is_cleaned():
    cleaned = validate_permission_definition({
        'name': 'Manage roles', 'permission_type': 'system', 'system_resource': 'role', 'action': '*',
    }, PROTECTED)

    assert cleaned['system_resource'] == 'role'
    assert cleaned['scope'] is None
    assert cleaned['resource_metadata'] == {}


def test_system_resource_has_no_wildcard():
    with pytest.raises(ValidationError) as exc_info:
        validate_permission_definition({
            'name': 'Everything', 'permission_type': 'system', 'system_resource': '*', 'action': '*',
        }, PROTECTED)
    assert exc_info.value.field == 'system_resource'


def test_system_permission_cannot_carry_data_scope():
    with pytest.raises(ValidationError) as exc_info:
        validate_permission_definition({
            'name': 'Mixed', 'permission_type': 'system', 'system_resource': 'role', 'action': '*',
            'schema_name': 'public',
        }, PROTECTED)
    assert exc_info.value.field == 'schema_name'


def test_table_permission_requires_schema_and_table():
    with pytest.raises(ValidationError) as exc_info:
        validate_permission_definition({
            'name': 'No table', 'permission_type': 'data', 'scope': 'table', 'schema_name': 'public', 'action': 'select',
        }, PROTECTED)
    assert exc_info.value.field == 'table_name'


def test_table_identifiers_are_checked():
    with pytest.raises(ValidationError) as exc_info:
        validate_permission_definition({
            'name': 'Injected', 'permission_type': 'data', 'scope': 'table', 'schema_name': 'public',
            'table_name': 'orders; drop table x', 'action': 'select',
        }, PROTECTED)
    assert exc_info.value.field == 'table_name'


@pytest.mark.parametrize("action", ['insert', 'update', 'delete', '*'])
def test_protected_schema_allows_only_select(action):
    with pytest.raises(ValidationError) as exc_info:
        validate_permission_definition({
            'name': 'Auth write', 'permission_type': 'data', 'scope': 'table', 'schema_name': 'auth',
            'table_name': 'users', 'action': action,
        }, PROTECTED)
    assert exc_info.value.field == 'action'


def test_protected_schema_select_is_allowed():
    cleaned = validate_permission_definition({
        'name': 'Auth read', 'permission_type': 'data', 'scope': 'table', 'schema_name': 'auth',
        'table_name': 'users', 'column_name': 'email', 'action': 'select',
    }, PROTECTED)

    assert cleaned['column_name'] == 'email'


def test_storage_permission_requires_metadata():
    with pytest.raises(ValidationError) as exc_info:
        validate_permission_definition({
            'name': 'Uploads', 'permission_type': 'data', 'scope': 'storage', 'action': 'insert',
            'metadata': {'bucket_name': 'assets'},
        }, PROTECTED)
    assert exc_info.value.field == 'metadata.path_pattern'


def test_storage_pattern_rejects_traversal():
    with pytest.raises(ValidationError) as exc_info:
        validate_permission_definition({
            'name': 'Escape', 'permission_type': 'data', 'scope': 'storage', 'action': 'select',
            'metadata': {'bucket_name': 'assets', 'path_pattern': '../*'},
        }, PROTECTED)
    assert exc_info.value.field == 'metadata.path_pattern'


def test_storage_permission_cannot_name_a_table():
    with pytest.raises(ValidationError) as exc_info:
        validate_permission_definition({
            'name': 'Both', 'permission_type': 'data', 'scope': 'storage', 'action': 'select',
            'table_name': 'orders', 'metadata': {'bucket_name': 'assets', 'path_pattern': '*'},
        }, PROTECTED)
    assert exc_info.value.field == 'table_name'


@pytest.mark.parametrize("field, value", [
    ('action', 'truncate'),
    ('permission_type', 'network'),
    ('scope', 'column'),
])
def test_unknown_vocabulary_is_rejected(field, value):
    data = {
        'name': 'Odd', 'permission_type': 'data', 'scope': 'table', 'schema_name': 'public',
        'table_name': 'orders', 'action': 'select',
    }
    data[field] = value

    with pytest.raises(ValidationError) as exc_info:
        validate_permission_definition(data, PROTECTED)
    assert exc_info.value.field == field


def test_is_protected_schema():
    assert is_protected_schema('auth', PROTECTED)
    assert not is_protected_schema('public', PROTECTED)
    assert not is_protected_schema(None, PROTECTED)
