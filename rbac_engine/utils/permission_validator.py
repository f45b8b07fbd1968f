"""Permission 정의 시점 검증. 평가 시점의 보호 스키마 검사와는 별개로 동작합니다."""
import re
from typing import Any, Dict, Iterable, Optional

from rbac_engine.config import Config
from rbac_engine.database.models import (
    Action,
    PermissionScope,
    PermissionType,
    SystemResource,
    WILDCARD,
)
from rbac_engine.services.exceptions import ValidationError

IDENTIFIER_PATTERN = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_]*$')
_CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f]')

ACTIONS = frozenset(a.value for a in Action)
SYSTEM_RESOURCES = frozenset(r.value for r in SystemResource)
SCOPES = frozenset(s.value for s in PermissionScope)
PERMISSION_TYPES = frozenset(t.value for t in PermissionType)


def is_protected_schema(schema_name: Optional[str], protected_schemas: Optional[Iterable[str]] = None) -> bool:
    protected = Config.PROTECTED_SCHEMAS if protected_schemas is None else protected_schemas
    return schema_name is not None and schema_name in protected


def _require(data: Dict[str, Any], field: str) -> Any:
    value = data.get(field)
    if value is None or value == '':
        raise ValidationError(field, 'This field is required.')
    return value


def _forbid(data: Dict[str, Any], fields: Iterable[str], reason: str) -> None:
    for field in fields:
        if data.get(field) not in (None, ''):
            raise ValidationError(field, reason)


def _validate_identifier(field: str, value: str) -> None:
    if value != WILDCARD and not IDENTIFIER_PATTERN.match(value):
        raise ValidationError(field, f"'{value}' is not a valid identifier.")


def validate_permission_definition(
    data: Dict[str, Any],
    protected_schemas: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    """
    Permission 생성/수정 요청을 검증하고, 저장 가능한 필드 딕셔너리로 정규화합니다.

    type/scope 조합에 따라 필수/금지 필드를 확인하며, 보호 스키마에 select 이외의
    액션을 정의하려는 시도는 이 단계에서 거부합니다.

    Args:
        data: name, description, permission_type, action, system_resource, scope,
              schema_name, table_name, column_name, metadata 키를 가진 딕셔너리.
        protected_schemas: 보호 스키마 목록. None이면 설정값을 사용합니다.

    Returns:
        검증을 통과한 필드만 담은 딕셔너리. (metadata는 resource_metadata 키로 반환)

    Raises:
        ValidationError: 필드 단위의 오류가 있을 때. (field 속성으로 위치를 알려줍니다)
    """
    name = _require(data, 'name')
    if len(name) > 100:
        raise ValidationError('name', 'Name must be at most 100 characters.')

    description = data.get('description')
    if description is not None and len(description) > 500:
        raise ValidationError('description', 'Description must be at most 500 characters.')

    permission_type = _require(data, 'permission_type')
    if permission_type not in PERMISSION_TYPES:
        raise ValidationError('permission_type', f"Unknown permission type '{permission_type}'.")

    action = _require(data, 'action')
    if action not in ACTIONS:
        raise ValidationError('action', f"Unknown action '{action}'.")

    cleaned = {
        'name': name,
        'description': description,
        'permission_type': permission_type,
        'action': action,
        'system_resource': None,
        'scope': None,
        'schema_name': None,
        'table_name': None,
        'column_name': None,
        'resource_metadata': {},
    }

    if permission_type == PermissionType.SYSTEM.value:
        resource = _require(data, 'system_resource')
        # 시스템 리소스는 와일드카드를 지원하지 않습니다.
        if resource not in SYSTEM_RESOURCES:
            raise ValidationError('system_resource', f"Unknown system resource '{resource}'.")
        _forbid(data, ('scope', 'schema_name', 'table_name', 'column_name'),
                'System permissions cannot define a data scope.')
        if (data.get('metadata') or {}).get('bucket_name') or (data.get('metadata') or {}).get('path_pattern'):
            raise ValidationError('metadata', 'System permissions cannot define a storage scope.')
        cleaned['system_resource'] = resource
        return cleaned

    scope = _require(data, 'scope')
    if scope not in SCOPES:
        raise ValidationError('scope', f"Unknown scope '{scope}'.")
    cleaned['scope'] = scope
    _forbid(data, ('system_resource',), 'Data permissions cannot target a system resource.')

    if scope == PermissionScope.TABLE.value:
        schema_name = _require(data, 'schema_name')
        table_name = _require(data, 'table_name')
        _validate_identifier('schema_name', schema_name)
        _validate_identifier('table_name', table_name)
        column_name = data.get('column_name') or None
        if column_name is not None:
            _validate_identifier('column_name', column_name)

        if is_protected_schema(schema_name, protected_schemas) and action != Action.SELECT.value:
            raise ValidationError(
                'action',
                f"Schema '{schema_name}' is protected; only 'select' permissions may be defined on it.",
            )

        cleaned.update(schema_name=schema_name, table_name=table_name, column_name=column_name)
        return cleaned

    # scope == storage
    _forbid(data, ('schema_name', 'table_name', 'column_name'),
            'Storage permissions cannot define schema, table or column.')
    metadata = data.get('metadata') or {}
    bucket_name = metadata.get('bucket_name')
    path_pattern = metadata.get('path_pattern')
    if not bucket_name:
        raise ValidationError('metadata.bucket_name', 'This field is required.')
    if not path_pattern:
        raise ValidationError('metadata.path_pattern', 'This field is required.')
    if '..' in path_pattern or _CONTROL_CHARS.search(path_pattern):
        raise ValidationError('metadata.path_pattern', 'Path pattern contains invalid characters.')

    cleaned['resource_metadata'] = {'bucket_name': bucket_name, 'path_pattern': path_pattern}
    return cleaned
