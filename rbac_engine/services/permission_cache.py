"""
계정별 유효 권한 집합의 선택적 인메모리 캐시.

기본값은 비활성화(PERMISSION_CACHE_ENABLED=false)이며, 활성화하면 역할/권한/권한 그룹/할당이
변경될 때마다 관리 서비스가 invalidate_all()로 캐시 전체를 비웁니다. TTL만으로 만료시키지 않습니다.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedPermission:
    """세션과 분리된 Permission 스냅샷. 매칭에 필요한 속성만 보관합니다."""
    id: int
    permission_type: str
    action: str
    system_resource: Optional[str] = None
    scope: Optional[str] = None
    schema_name: Optional[str] = None
    table_name: Optional[str] = None
    column_name: Optional[str] = None
    resource_metadata: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    @property
    def bucket_name(self):
        return self.resource_metadata.get("bucket_name")

    @property
    def path_pattern(self):
        return self.resource_metadata.get("path_pattern")

    @classmethod
    def from_model(cls, permission) -> 'CachedPermission':
        return cls(
            id=permission.id,
            permission_type=permission.permission_type,
            action=permission.action,
            system_resource=permission.system_resource,
            scope=permission.scope,
            schema_name=permission.schema_name,
            table_name=permission.table_name,
            column_name=permission.column_name,
            resource_metadata=dict(permission.resource_metadata or {}),
        )


class PermissionSetCache:
    """
    계정 ID별 유효 권한 스냅샷 저장소.

    invalidate_all()은 세대(generation)를 올립니다. 조회를 시작할 때의 세대를 put()에 넘기면,
    그 사이에 무효화가 일어난 경우 스냅샷을 저장하지 않고 호출자에게만 돌려줍니다.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[int, Tuple[CachedPermission, ...]] = {}
        self._generation = 0

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def get(self, account_id: int) -> Optional[Tuple[CachedPermission, ...]]:
        with self._lock:
            return self._entries.get(account_id)

    def put(self, account_id: int, permissions: Iterable,
            generation: Optional[int] = None) -> Tuple[CachedPermission, ...]:
        snapshot = tuple(CachedPermission.from_model(p) for p in permissions)
        with self._lock:
            stale = generation is not None and generation != self._generation
            if not stale:
                self._entries[account_id] = snapshot
        if stale:
            logger.debug("Discarded permission snapshot for account %s loaded before invalidation", account_id)
        return snapshot

    def invalidate_all(self) -> None:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._generation += 1
        if count:
            logger.debug("Permission cache invalidated (%d accounts)", count)

    def __len__(self):
        with self._lock:
            return len(self._entries)
