import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from rbac_engine.config import Config
from rbac_engine.database.models import Action
from rbac_engine.repositories.interfaces import IObjectStorage
from rbac_engine.services.authorization_service import AuthorizationService
from rbac_engine.services.exceptions import (
    CapacityExceeded, EvaluationCancelled, PermissionDenied, QueryFailure
)
from rbac_engine.utils.path_security import normalize_file_path, validate_batch_file_paths

logger = logging.getLogger(__name__)

DELETE = Action.DELETE.value


class FolderDeleteService:
    """
    폴더(하위 트리) 삭제의 권한을 결정하고 삭제를 수행하는 서비스.

    폴더 자체에 대한 delete 권한이 있으면 한 번의 평가로 하위 트리 전체를 승인하고,
    없으면 하위 객체 전부를 일괄 평가하여 하나라도 거부되면 전체를 거부합니다.
    """

    def __init__(
        self,
        authorization_service: AuthorizationService,
        storage: IObjectStorage,
        max_total_files: Optional[int] = None,
        max_folders_processed: Optional[int] = None,
        max_batch_size: Optional[int] = None,
        list_page_limit: Optional[int] = None,
        max_delete_batch: Optional[int] = None,
        max_deletion_files: Optional[int] = None,
    ):
        self.authorization_service = authorization_service
        self.storage = storage
        self.max_total_files = Config.MAX_TOTAL_FILES if max_total_files is None else max_total_files
        self.max_folders_processed = Config.MAX_FOLDERS_PROCESSED if max_folders_processed is None else max_folders_processed
        self.max_batch_size = Config.MAX_BATCH_SIZE if max_batch_size is None else max_batch_size
        self.list_page_limit = Config.LIST_PAGE_LIMIT if list_page_limit is None else list_page_limit
        self.max_delete_batch = Config.MAX_DELETE_BATCH if max_delete_batch is None else max_delete_batch
        self.max_deletion_files = Config.MAX_DELETION_FILES if max_deletion_files is None else max_deletion_files

    def authorize_subtree_delete(
        self,
        account_id: int,
        bucket: str,
        folder_path: str,
        member_paths: List[str],
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """
        폴더와 그 하위 객체 전체의 삭제를 승인합니다.

        1. 폴더 경로 자체에 delete 권한이 있으면 하위 객체를 개별 평가하지 않고 승인합니다.
        2. 없으면 member_paths 전체를 일괄 평가하고, 모두 허용될 때만 승인합니다.

        Raises:
            PermissionDenied: 폴더 권한이 없고 하위 객체 중 하나라도 거부되었을 때.
                              하위 객체가 없으면 폴더 권한만으로 판단합니다.
        """
        if self.authorization_service.has_permission(account_id, bucket, DELETE, folder_path, cancel_event):
            logger.debug("Folder delete authorized by parent check (%d members)", len(member_paths))
            return

        if not member_paths:
            raise PermissionDenied(bucket, folder_path, DELETE)

        try:
            self.authorization_service.validate_bulk(account_id, bucket, DELETE, member_paths,
                                                     cancel_event=cancel_event)
        except PermissionDenied:
            logger.warning(
                "Folder delete denied for account %s in bucket %s (%d members checked)",
                account_id, bucket, len(member_paths)
            )
            raise

    def _list_folder(self, bucket: str, folder: str, cancel_event: Optional[threading.Event]):
        """한 폴더의 모든 페이지를 조회합니다. 파일 한도를 넘으면 더 조회하지 않습니다."""
        entries = []
        offset = 0
        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise EvaluationCancelled("Subtree enumeration was cancelled.")
            page = self.storage.list_children(bucket, folder, limit=self.list_page_limit, offset=offset)
            entries.extend(page)
            if len(page) < self.list_page_limit or len(entries) > self.max_total_files:
                return entries
            offset += len(page)

    def collect_subtree_paths(
        self,
        bucket: str,
        folder_path: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[str]:
        """
        폴더 하위의 모든 파일 경로를 너비 우선으로 수집합니다.

        형제 폴더들은 max_batch_size 단위로 묶어 동시에 조회합니다. 한 폴더의 조회 실패는
        로그만 남기고 건너뛰지만, 한도 초과와 취소는 즉시 탐색을 멈춥니다.

        Raises:
            CapacityExceeded: 파일 수나 처리한 폴더 수가 한도에 도달했을 때.
            EvaluationCancelled: cancel_event가 set되었을 때.
        """
        root = normalize_file_path(folder_path)
        files: List[str] = []
        pending: List[str] = [root]
        folders_processed = 0

        with ThreadPoolExecutor(max_workers=self.max_batch_size) as executor:
            while pending:
                if cancel_event is not None and cancel_event.is_set():
                    raise EvaluationCancelled("Subtree enumeration was cancelled.")

                batch = pending[:self.max_batch_size]
                del pending[:self.max_batch_size]
                futures = [executor.submit(self._list_folder, bucket, folder, cancel_event) for folder in batch]

                for folder, future in zip(batch, futures):
                    try:
                        entries = future.result()
                    except EvaluationCancelled:
                        raise
                    except Exception:
                        logger.warning("Failed to list contents of folder in bucket %s", bucket, exc_info=True)
                        continue

                    for entry in entries:
                        item_path = f"{folder}/{entry.name}" if folder else entry.name
                        if entry.is_folder:
                            pending.append(item_path)
                            continue
                        files.append(item_path)
                        if len(files) >= self.max_total_files:
                            raise CapacityExceeded(
                                f"Too many files to process (max: {self.max_total_files}). "
                                "Please delete in smaller batches."
                            )

                folders_processed += len(batch)
                if folders_processed >= self.max_folders_processed:
                    raise CapacityExceeded(
                        f"Too many folders to process (max: {self.max_folders_processed}). "
                        "Please delete in smaller batches."
                    )

        return files

    def _is_non_empty_folder(self, bucket: str, path: str) -> bool:
        try:
            return len(self.storage.list_children(bucket, path, limit=1)) > 0
        except Exception:
            # 조회할 수 없으면 단일 객체로 취급합니다.
            logger.warning("Could not list path in bucket %s; treating it as a single object", bucket, exc_info=True)
            return False

    def delete_paths(
        self,
        account_id: int,
        bucket: str,
        paths: List[str],
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[str, Any]:
        """
        파일 또는 폴더들을 삭제합니다. 내용이 있는 폴더는 하위 파일 전체로 펼쳐서 삭제합니다.

        Returns:
            {'success': True, 'deleted': 삭제된 객체 경로 수}

        Raises:
            ValidationError: 경로 목록이 비었거나, 한도를 넘거나, 안전하지 않은 경로가 있을 때.
            PermissionDenied: 삭제 권한이 없는 경로가 있을 때.
            CapacityExceeded: 삭제 대상 파일 수가 한도를 넘었을 때.
            QueryFailure: 스토리지 삭제에 실패했을 때.
        """
        validate_batch_file_paths(paths, self.max_delete_batch)
        normalized = [normalize_file_path(p) for p in paths]

        self.authorization_service.validate_bulk(account_id, bucket, DELETE, normalized, cancel_event=cancel_event)

        to_delete: List[str] = []
        total = 0
        checked_folders = set()

        for path in normalized:
            if not self._is_non_empty_folder(bucket, path):
                to_delete.append(path)
                total += 1
                continue

            members = self.collect_subtree_paths(bucket, path, cancel_event)
            total += len(members)
            if total > self.max_deletion_files:
                raise CapacityExceeded(
                    f"Too many files to delete in batch (max: {self.max_deletion_files}). "
                    "Please delete in smaller batches."
                )

            if path not in checked_folders:
                self.authorize_subtree_delete(account_id, bucket, path, members, cancel_event)
                checked_folders.add(path)
            to_delete.extend(members)

        unique_paths = list(dict.fromkeys(to_delete))
        if unique_paths:
            try:
                self.storage.remove(bucket, unique_paths)
            except Exception as e:
                raise QueryFailure(f"Failed to delete files: {e}") from e

        logger.info("Deleted %d objects from bucket %s for account %s", len(unique_paths), bucket, account_id)
        return {"success": True, "deleted": len(unique_paths)}
