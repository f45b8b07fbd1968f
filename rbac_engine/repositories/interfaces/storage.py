from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class StorageEntry:
    """폴더 목록 조회 결과의 한 항목. 폴더는 식별자(id)가 없는 항목으로 표현됩니다."""
    name: str
    is_folder: bool


class IObjectStorage(ABC):
    """
    객체 스토리지 백엔드의 경계. 엔진은 이를 자체 지연 시간과 실패 모드를 가진
    불투명한 I/O로 취급합니다.
    """

    @abstractmethod
    def list_children(self, bucket: str, folder_path: str, limit: int, offset: int = 0) -> List[StorageEntry]:
        """폴더 바로 아래의 항목을 offset부터 최대 limit개까지 조회합니다. (페이지 단위)"""
        pass

    @abstractmethod
    def remove(self, bucket: str, paths: List[str]) -> None:
        """주어진 객체 경로들을 삭제합니다."""
        pass
