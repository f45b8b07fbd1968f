"""
권한(Permission)의 선언된 범위가 구체적인 요청 대상에 적용되는지 판단하는 순수 함수 모음.

부수 효과가 없으며 저장소에 접근하지 않습니다. 평가기(AuthorizationService)는 저장소에서
가져온 권한 행(row)을 이 모듈로 대조합니다.
"""
import re
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Union

from rbac_engine.config import Config
from rbac_engine.database.models import Action, PermissionScope, PermissionType, WILDCARD
from rbac_engine.utils.path_security import has_traversal_segment, normalize_file_path

PATH_SYNTAX_SEGMENT = 'segment'
PATH_SYNTAX_LIKE = 'like'

_PLACEHOLDER = re.compile(r'\{\{\s*(\w+)\s*\}\}')


@dataclass(frozen=True)
class SystemTarget:
    resource: str
    action: str


@dataclass(frozen=True)
class TableTarget:
    schema: str
    table: str
    action: str
    column: Optional[str] = None


@dataclass(frozen=True)
class StorageTarget:
    bucket: str
    path: str
    action: str


Target = Union[SystemTarget, TableTarget, StorageTarget]


def action_matches(permission_action: str, requested_action: str) -> bool:
    return permission_action == WILDCARD or permission_action == requested_action


def _name_matches(declared: Optional[str], requested: Optional[str]) -> bool:
    return declared == WILDCARD or (declared is not None and declared == requested)


def resolve_placeholders(pattern: str, variables: Optional[Mapping[str, str]]) -> str:
    """'{{account_id}}', '{{user_id}}' 같은 자리표시자를 값으로 치환합니다. 값이 없으면 그대로 둡니다."""
    if not variables:
        return pattern

    def replace(match):
        value = variables.get(match.group(1))
        return match.group(0) if value is None else str(value)

    return _PLACEHOLDER.sub(replace, pattern)


def _segment_matches(pattern_segment: str, path_segment: str) -> bool:
    if '*' not in pattern_segment:
        return pattern_segment == path_segment
    regex = '[^/]*'.join(re.escape(part) for part in pattern_segment.split('*'))
    return re.fullmatch(regex, path_segment) is not None


def path_matches(
    pattern: str,
    path: str,
    syntax: Optional[str] = None,
    variables: Optional[Mapping[str, str]] = None,
) -> bool:
    """
    스토리지 경로가 path_pattern을 만족하는지 검사합니다.

    syntax='segment' (기본값):
        - '*'              : 버킷 루트를 포함한 모든 경로
        - 'uploads/*'      : 'uploads' 아래의 모든 하위 경로 (uploads 자체는 제외)
        - 'avatars/*.png'  : 마지막이 아닌 '*'는 한 구간 안에서만 매칭
        - 그 외            : 정확히 같은 경로
    syntax='like':
        '*'가 '/'를 포함한 임의의 문자열과 매칭됩니다. (SQL LIKE 호환)

    치환되지 않은 자리표시자가 남아 있거나, 경로 또는 치환된 패턴에 '..' 구간이 있으면 매칭하지 않습니다.
    """
    syntax = syntax or Config.STORAGE_PATH_PATTERN_SYNTAX
    resolved = resolve_placeholders(pattern, variables)
    if _PLACEHOLDER.search(resolved):
        return False
    if has_traversal_segment(path) or has_traversal_segment(resolved):
        return False

    pattern_norm = normalize_file_path(resolved)
    path_norm = normalize_file_path(path)

    if syntax == PATH_SYNTAX_LIKE:
        regex = '.*'.join(re.escape(part) for part in pattern_norm.split('*'))
        return re.fullmatch(regex, path_norm, flags=re.DOTALL) is not None

    if syntax != PATH_SYNTAX_SEGMENT:
        raise ValueError(f"Unknown path pattern syntax '{syntax}'.")

    if pattern_norm == WILDCARD:
        return True

    pattern_segments = pattern_norm.split('/') if pattern_norm else []
    path_segments = path_norm.split('/') if path_norm else []

    if pattern_segments and pattern_segments[-1] == WILDCARD:
        prefix = pattern_segments[:-1]
        if len(path_segments) <= len(prefix):
            return False
        return all(_segment_matches(p, s) for p, s in zip(prefix, path_segments))

    if len(pattern_segments) != len(path_segments):
        return False
    return all(_segment_matches(p, s) for p, s in zip(pattern_segments, path_segments))


def matches(
    permission,
    target: Target,
    variables: Optional[Mapping[str, str]] = None,
    protected_schemas: Optional[Iterable[str]] = None,
    path_syntax: Optional[str] = None,
) -> bool:
    """
    하나의 Permission이 주어진 대상(target)에 적용되는지 판단합니다.

    Args:
        permission: Permission 모델 (또는 같은 속성을 가진 객체).
        target: SystemTarget, TableTarget, StorageTarget 중 하나.
        variables: 스토리지 path_pattern 자리표시자 치환값.
        protected_schemas: 보호 스키마 목록. None이면 설정값을 사용합니다.
        path_syntax: 경로 패턴 문법. None이면 설정값을 사용합니다.

    Returns:
        적용되면 True. 매칭되는 권한이 없다는 것은 거부를 의미합니다.
    """
    if not action_matches(permission.action, target.action):
        return False

    if isinstance(target, SystemTarget):
        return (
            permission.permission_type == PermissionType.SYSTEM.value
            and permission.system_resource == target.resource
        )

    if permission.permission_type != PermissionType.DATA.value:
        return False

    if isinstance(target, TableTarget):
        if permission.scope != PermissionScope.TABLE.value:
            return False

        # 보호 스키마에는 선언된 액션과 무관하게 select만 허용합니다.
        protected = Config.PROTECTED_SCHEMAS if protected_schemas is None else protected_schemas
        if target.schema in protected and target.action != Action.SELECT.value:
            return False

        if not _name_matches(permission.schema_name, target.schema):
            return False
        if not _name_matches(permission.table_name, target.table):
            return False

        if permission.column_name:
            # 컬럼 범위 권한은 테이블 전체 요청에 암묵적으로 적용되지 않습니다.
            return target.column is not None and _name_matches(permission.column_name, target.column)
        return True

    if isinstance(target, StorageTarget):
        if permission.scope != PermissionScope.STORAGE.value:
            return False
        if not permission.bucket_name or not _name_matches(permission.bucket_name, target.bucket):
            return False
        if not permission.path_pattern:
            return False
        return path_matches(permission.path_pattern, target.path, syntax=path_syntax, variables=variables)

    raise TypeError(f"Unsupported target type: {type(target).__name__}")
