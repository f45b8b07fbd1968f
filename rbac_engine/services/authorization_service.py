import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Union

from rbac_engine.config import Config
from rbac_engine.database.models import Action, PermissionScope, PermissionType, WILDCARD
from rbac_engine.repositories.interfaces import IAccountRepository, IPermissionRepository
from rbac_engine.services.exceptions import (
    EvaluationCancelled, PermissionDenied, QueryFailure, ValidationError
)
from rbac_engine.services.permission_cache import PermissionSetCache
from rbac_engine.services.scope_matcher import (
    StorageTarget, SystemTarget, TableTarget, matches
)
from rbac_engine.utils.path_security import validate_target_path

logger = logging.getLogger(__name__)

# 스토리지 액션과 Decision 플래그의 대응 관계
STORAGE_ACTIONS = {
    Action.SELECT.value: 'can_read',
    Action.UPDATE.value: 'can_update',
    Action.DELETE.value: 'can_delete',
    Action.INSERT.value: 'can_upload',
}

MAX_DENIED_PATHS_IN_MESSAGE = 5


@dataclass
class Decision:
    """하나의 스토리지 경로에 대한 네 가지 액션의 허용 여부. 기본값은 모두 거부입니다."""
    can_read: bool = False
    can_update: bool = False
    can_delete: bool = False
    can_upload: bool = False

    @classmethod
    def full(cls) -> 'Decision':
        return cls(True, True, True, True)

    def is_full(self) -> bool:
        return self.can_read and self.can_update and self.can_delete and self.can_upload

    def allows(self, action: str) -> bool:
        if action == WILDCARD:
            return self.is_full()
        return getattr(self, STORAGE_ACTIONS[action])

    def to_dict(self) -> Dict[str, bool]:
        return {
            'can_read': self.can_read,
            'can_update': self.can_update,
            'can_delete': self.can_delete,
            'can_upload': self.can_upload,
        }


@dataclass(frozen=True)
class TableRef:
    table: str
    column: Optional[str] = None


class AuthorizationService:
    """
    계정의 유효 권한 집합을 조회해 Scope Matcher로 대조하는 경로 권한 평가기.

    저장소 조회 실패와 취소는 모두 QueryFailure로 모이며, 공개 메서드의 경계에서 항상
    거부(False 또는 PermissionDenied)로 변환됩니다. 평가 결과가 '알 수 없음'으로 새어 나가지 않습니다.
    """

    cache: Optional[PermissionSetCache] = None

    def __init__(
        self,
        permission_repo: IPermissionRepository,
        account_repo: Optional[IAccountRepository] = None,
        cache: Optional[PermissionSetCache] = None,
        protected_schemas: Optional[Iterable[str]] = None,
        path_syntax: Optional[str] = None,
    ):
        """
        Args:
            permission_repo: 유효 권한 집합을 조회하는 리포지토리.
            account_repo: '{{user_id}}' 자리표시자 치환을 위한 계정 리포지토리 (선택).
            cache: 유효 권한 집합 캐시. None이면 PERMISSION_CACHE_ENABLED 설정을 따릅니다.
            protected_schemas: 보호 스키마 목록. None이면 설정값을 사용합니다.
            path_syntax: 스토리지 경로 패턴 문법. None이면 설정값을 사용합니다.
        """
        self.permission_repo = permission_repo
        self.account_repo = account_repo
        if cache is None and Config.PERMISSION_CACHE_ENABLED:
            cache = PermissionSetCache()
        self.cache = cache
        self.protected_schemas = (
            frozenset(protected_schemas) if protected_schemas is not None else Config.PROTECTED_SCHEMAS
        )
        self.path_syntax = path_syntax or Config.STORAGE_PATH_PATTERN_SYNTAX

    # --- 내부 헬퍼 ---

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise EvaluationCancelled("Permission evaluation was cancelled.")

    def _load_permissions(
        self,
        account_id: int,
        permission_type: str,
        scope: Optional[str] = None,
        actions: Optional[Iterable[str]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List:
        """
        유효 권한 집합을 한 번의 저장소 호출로 가져옵니다.

        Raises:
            QueryFailure: 저장소 조회에 실패했거나 평가가 취소되었을 때.
        """
        self._check_cancelled(cancel_event)

        if self.cache is not None:
            permissions = self.cache.get(account_id)
            if permissions is None:
                generation = self.cache.generation
                permissions = self.cache.put(account_id, self._fetch(account_id), generation=generation)
            permissions = [
                p for p in permissions
                if p.permission_type == permission_type and (scope is None or p.scope == scope)
            ]
        else:
            permissions = self._fetch(
                account_id, permission_type=permission_type, scope=scope, actions=actions
            )

        self._check_cancelled(cancel_event)
        return permissions

    def _fetch(self, account_id: int, **filters) -> List:
        try:
            return list(self.permission_repo.find_effective_permissions(account_id, **filters))
        except Exception as e:
            raise QueryFailure(f"Failed to load permissions for account {account_id}.") from e

    def _variables(self, account_id: int, permissions: List) -> Dict[str, str]:
        variables = {'account_id': str(account_id)}
        needs_user = any('{{' in (p.path_pattern or '') for p in permissions if p.scope == PermissionScope.STORAGE.value)
        if needs_user and self.account_repo is not None:
            try:
                account = self.account_repo.find_by_id(account_id)
            except Exception as e:
                raise QueryFailure(f"Failed to load account {account_id}.") from e
            if account is not None and account.auth_user_id:
                variables['user_id'] = str(account.auth_user_id)
        return variables

    def _any_match(self, permissions: List, target, variables=None) -> bool:
        return any(
            matches(
                p, target,
                variables=variables,
                protected_schemas=self.protected_schemas,
                path_syntax=self.path_syntax,
            )
            for p in permissions
        )

    def _decide(self, permissions: List, bucket: str, path: str, variables: Dict[str, str]) -> Decision:
        decision = Decision()
        for action, flag in STORAGE_ACTIONS.items():
            target = StorageTarget(bucket=bucket, path=path, action=action)
            setattr(decision, flag, self._any_match(permissions, target, variables))
        return decision

    @staticmethod
    def _validate_action(action: str, allow_wildcard: bool = False) -> None:
        valid = set(STORAGE_ACTIONS)
        if allow_wildcard:
            valid.add(WILDCARD)
        if action not in valid:
            raise ValidationError('action', f"Unknown action '{action}'.")

    @staticmethod
    def _validate_target(target) -> None:
        if not isinstance(target, TableRef):
            validate_target_path(target)

    def _evaluate(self, account_id: int, namespace: str, action: str, target, cancel_event) -> bool:
        if isinstance(target, TableRef):
            permissions = self._load_permissions(
                account_id, PermissionType.DATA.value, PermissionScope.TABLE.value, [action], cancel_event
            )
            table_target = TableTarget(schema=namespace, table=target.table, action=action, column=target.column)
            return self._any_match(permissions, table_target)

        permissions = self._load_permissions(
            account_id, PermissionType.DATA.value, PermissionScope.STORAGE.value, [action], cancel_event
        )
        storage_target = StorageTarget(bucket=namespace, path=target, action=action)
        return self._any_match(permissions, storage_target, self._variables(account_id, permissions))

    # --- 단일 평가 ---

    def has_permission(
        self,
        account_id: int,
        bucket_or_schema: str,
        action: str,
        target: Union[str, TableRef],
        cancel_event: Optional[threading.Event] = None,
    ) -> bool:
        """
        계정이 네임스페이스(버킷 또는 스키마) 안의 대상에 액션을 수행할 수 있는지 평가합니다.

        Args:
            account_id: 평가 대상 계정 ID.
            bucket_or_schema: 스토리지 버킷 이름 또는 테이블 스키마 이름.
            action: 'select', 'insert', 'update', 'delete' 중 하나.
            target: 버킷 기준 상대 경로(str) 또는 TableRef.
            cancel_event: set되면 평가를 중단하고 거부합니다.

        Returns:
            허용되면 True. 저장소 오류나 취소는 False입니다.

        Raises:
            ValidationError: 액션을 알 수 없거나 경로에 '..' 구간 등 잘못된 패턴이 있을 때.
        """
        self._validate_action(action)
        self._validate_target(target)
        try:
            allowed = self._evaluate(account_id, bucket_or_schema, action, target, cancel_event)
        except QueryFailure:
            logger.error(
                "Permission evaluation failed; denying %s on %s for account %s",
                action, bucket_or_schema, account_id, exc_info=True
            )
            return False

        if not allowed:
            logger.info("Denied %s on %s for account %s", action, bucket_or_schema, account_id)
        return allowed

    def has_storage_permission(self, account_id: int, bucket: str, action: str, path: str,
                               cancel_event: Optional[threading.Event] = None) -> bool:
        return self.has_permission(account_id, bucket, action, path, cancel_event)

    def has_data_permission(self, account_id: int, schema: str, table: str, action: str,
                            column: Optional[str] = None,
                            cancel_event: Optional[threading.Event] = None) -> bool:
        return self.has_permission(account_id, schema, action, TableRef(table, column), cancel_event)

    def has_system_permission(self, account_id: int, resource: str, action: str,
                              cancel_event: Optional[threading.Event] = None) -> bool:
        """계정이 시스템 리소스(account, role, permission 등)에 대한 관리 권한을 가지는지 평가합니다."""
        self._validate_action(action)
        try:
            permissions = self._load_permissions(
                account_id, PermissionType.SYSTEM.value, actions=[action], cancel_event=cancel_event
            )
            allowed = self._any_match(permissions, SystemTarget(resource=resource, action=action))
        except QueryFailure:
            logger.error(
                "System permission evaluation failed; denying %s on %s for account %s",
                action, resource, account_id, exc_info=True
            )
            return False

        if not allowed:
            logger.info("Denied %s on system resource %s for account %s", action, resource, account_id)
        return allowed

    def validate_or_fail(
        self,
        account_id: int,
        bucket_or_schema: str,
        action: str,
        target: Union[str, TableRef],
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """
        Raises:
            PermissionDenied: 평가 결과가 거부일 때 (저장소 오류 포함).
        """
        if not self.has_permission(account_id, bucket_or_schema, action, target, cancel_event):
            if isinstance(target, TableRef):
                described = target.table if target.column is None else f"{target.table}.{target.column}"
            else:
                described = target
            raise PermissionDenied(bucket_or_schema, described, action)

    def validate_system_or_fail(self, account_id: int, resource: str, action: str) -> None:
        """
        Raises:
            PermissionDenied: 시스템 리소스 권한이 없을 때.
        """
        if not self.has_system_permission(account_id, resource, action):
            raise PermissionDenied('system', resource, action)

    # --- 스토리지 다중 액션/일괄 평가 ---

    def get_storage_permissions(self, account_id: int, bucket: str, path: str,
                                cancel_event: Optional[threading.Event] = None) -> Decision:
        """한 경로에 대한 네 가지 액션을 한 번의 조회로 평가합니다. 실패하면 모두 거부입니다."""
        validate_target_path(path)
        try:
            permissions = self._load_permissions(
                account_id, PermissionType.DATA.value, PermissionScope.STORAGE.value, cancel_event=cancel_event
            )
            return self._decide(permissions, bucket, path, self._variables(account_id, permissions))
        except QueryFailure:
            logger.error(
                "Storage permission evaluation failed for account %s on bucket %s",
                account_id, bucket, exc_info=True
            )
            return Decision()

    def bulk_evaluate(
        self,
        account_id: int,
        bucket: str,
        action: str,
        paths: List[str],
        parent_path: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[str, Decision]:
        """
        여러 경로의 권한을 한 번의 저장소 조회로 평가합니다.

        각 경로의 Decision은 네 가지 액션을 모두 담으므로, 어떤 액션에 대해서도
        has_permission()의 단건 결과와 같습니다.

        Args:
            account_id: 평가 대상 계정 ID.
            bucket: 버킷 이름.
            action: 호출자가 수행하려는 액션 ('*'이면 전체). 거부 로그 집계에 사용됩니다.
            paths: 버킷 기준 상대 경로 목록.
            parent_path: 주어지면 먼저 부모 경로를 평가하고, 네 액션이 모두 허용되면
                         자식 경로를 개별 평가하지 않고 같은 결과를 상속합니다.
            cancel_event: set되면 평가를 중단합니다. 부분 결과는 반환하지 않습니다.

        Returns:
            {경로: Decision}. 평가하지 못한 경로는 모두 거부로 채워집니다.

        Raises:
            ValidationError: 액션을 알 수 없거나 경로 중 하나라도 잘못되었을 때. 평가 전에 발생합니다.
        """
        self._validate_action(action, allow_wildcard=True)
        for path in paths:
            validate_target_path(path)
        if parent_path is not None:
            validate_target_path(parent_path)
        if not paths:
            return {}

        try:
            permissions = self._load_permissions(
                account_id, PermissionType.DATA.value, PermissionScope.STORAGE.value, cancel_event=cancel_event
            )
            variables = self._variables(account_id, permissions)

            if parent_path is not None:
                parent = self._decide(permissions, bucket, parent_path, variables)
                if parent.is_full():
                    logger.debug(
                        "Parent path grants full access; %d child paths inherit it (account %s)",
                        len(paths), account_id
                    )
                    return {path: Decision.full() for path in paths}

            results = {}
            for path in paths:
                self._check_cancelled(cancel_event)
                results[path] = self._decide(permissions, bucket, path, variables)
        except QueryFailure:
            logger.error(
                "Bulk permission evaluation failed; denying %d paths on bucket %s for account %s",
                len(paths), bucket, account_id, exc_info=True
            )
            return {path: Decision() for path in paths}

        denied = sum(1 for d in results.values() if not d.allows(action))
        if denied:
            logger.info(
                "Bulk evaluation denied %s on %d of %d paths in bucket %s for account %s",
                action, denied, len(results), bucket, account_id
            )
        return results

    def validate_bulk(
        self,
        account_id: int,
        bucket: str,
        action: str,
        paths: List[str],
        parent_path: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """
        모든 경로에 액션이 허용될 때만 통과합니다. (전부 아니면 전무)

        Raises:
            PermissionDenied: 하나 이상의 경로가 거부되었을 때. 최대 5개의 경로만 메시지에 포함합니다.
        """
        decisions = self.bulk_evaluate(account_id, bucket, action, paths, parent_path, cancel_event)
        denied = [path for path in paths if not decisions.get(path, Decision()).allows(action)]
        if denied:
            shown = ', '.join(denied[:MAX_DENIED_PATHS_IN_MESSAGE])
            if len(denied) > MAX_DENIED_PATHS_IN_MESSAGE:
                shown = f"{shown} and {len(denied) - MAX_DENIED_PATHS_IN_MESSAGE} more"
            raise PermissionDenied(bucket, shown, action, detail=f"{len(denied)} path(s) denied")
