"""스토리지 객체 경로의 검증 및 정규화 유틸리티."""
import re
from typing import List

from rbac_engine.services.exceptions import ValidationError

MAX_FILE_NAME_LENGTH = 255
MAX_FILE_PATH_LENGTH = 1024

_CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f]')
_WINDOWS_DRIVE = re.compile(r'^[a-zA-Z]:')

RESERVED_NAMES = frozenset(
    ['CON', 'PRN', 'AUX', 'NUL']
    + [f'COM{i}' for i in range(1, 10)]
    + [f'LPT{i}' for i in range(1, 10)]
)


def validate_file_name(file_name: str) -> None:
    """
    경로의 한 구간(파일/폴더 이름)이 안전한지 검사합니다.

    Raises:
        ValidationError: 길이, 경로 구분자, 제어 문자, 예약어 규칙을 위반했을 때.
    """
    if not file_name or not isinstance(file_name, str):
        raise ValidationError('file_name', 'File name is required and must be a string')

    if len(file_name) > MAX_FILE_NAME_LENGTH:
        raise ValidationError('file_name', f'File name must be between 1 and {MAX_FILE_NAME_LENGTH} characters')

    if '..' in file_name or '/' in file_name or '\\' in file_name:
        raise ValidationError('file_name', 'File name contains invalid path characters')

    if _CONTROL_CHARS.search(file_name):
        raise ValidationError('file_name', 'File name contains invalid control characters')

    if file_name.split('.')[0].upper() in RESERVED_NAMES:
        raise ValidationError('file_name', 'File name uses a reserved system name')

    if file_name.endswith('.') or file_name.endswith(' '):
        raise ValidationError('file_name', 'File name cannot end with a dot or space')


def validate_file_path(file_path: str) -> None:
    """
    버킷 기준 상대 경로가 안전한지 검사합니다. 절대 경로와 '..' 탐색은 허용하지 않습니다.

    Raises:
        ValidationError: 경로가 비었거나, 너무 길거나, 탐색 패턴/제어 문자를 포함할 때.
    """
    if not file_path or not isinstance(file_path, str):
        raise ValidationError('path', 'File path is required and must be a string')

    if len(file_path) > MAX_FILE_PATH_LENGTH:
        raise ValidationError('path', f'File path is too long (max {MAX_FILE_PATH_LENGTH} characters)')

    if '..' in file_path:
        raise ValidationError('path', 'File path contains invalid traversal patterns')

    if file_path.startswith('/') or _WINDOWS_DRIVE.match(file_path):
        raise ValidationError('path', 'File path cannot be absolute')

    if _CONTROL_CHARS.search(file_path):
        raise ValidationError('path', 'File path contains invalid control characters')

    for segment in filter(None, file_path.split('/')):
        validate_file_name(segment)


def has_traversal_segment(file_path: str) -> bool:
    """'/' 또는 '\\'로 나눈 구간 중 '..'가 있으면 True."""
    return any(segment == '..' for segment in re.split(r'[/\\]', file_path))


def validate_target_path(file_path: str) -> None:
    """
    권한 평가 대상 경로를 검사합니다. 버킷 루트('')와 앞뒤 '/'는 허용하지만 '..' 구간은 허용하지 않습니다.

    Raises:
        ValidationError: 문자열이 아니거나, 너무 길거나, 탐색 구간/제어 문자를 포함할 때.
    """
    if not isinstance(file_path, str):
        raise ValidationError('path', 'File path must be a string')

    if len(file_path) > MAX_FILE_PATH_LENGTH:
        raise ValidationError('path', f'File path is too long (max {MAX_FILE_PATH_LENGTH} characters)')

    if has_traversal_segment(file_path):
        raise ValidationError('path', 'File path contains invalid traversal patterns')

    if _CONTROL_CHARS.search(file_path):
        raise ValidationError('path', 'File path contains invalid control characters')


def normalize_file_path(file_path: str) -> str:
    """
    앞뒤 '/'와 빈 구간, '.' 구간을 제거한 정규 경로를 반환합니다. 루트는 ''입니다.

    Raises:
        ValidationError: '..' 구간이 있을 때. 조용히 제거하지 않습니다.
    """
    if not file_path:
        return ''
    if has_traversal_segment(file_path):
        raise ValidationError('path', 'File path contains invalid traversal patterns')
    segments = [s for s in file_path.split('/') if s and s != '.']
    return '/'.join(segments)


def validate_batch_file_paths(file_paths: List[str], max_count: int = 100) -> None:
    """
    일괄 작업에 전달된 경로 목록을 검사합니다.

    Raises:
        ValidationError: 목록이 비었거나, 한도를 넘거나, 잘못된 경로/중복 경로가 있을 때.
    """
    if not isinstance(file_paths, (list, tuple)):
        raise ValidationError('paths', 'File paths must be a list')

    if not file_paths:
        raise ValidationError('paths', 'At least one file path is required')

    if len(file_paths) > max_count:
        raise ValidationError('paths', f'Too many files in batch operation (max: {max_count})')

    for file_path in file_paths:
        validate_file_path(file_path)

    if len(set(file_paths)) != len(file_paths):
        raise ValidationError('paths', 'Duplicate file paths detected in batch operation')
