# rbac_engine/config.py
import logging
import os

from dotenv import load_dotenv

load_dotenv()

DEFAULT_PROTECTED_SCHEMAS = (
    'auth',
    'cron',
    'extensions',
    'information_schema',
    'net',
    'pgsodium',
    'pgsodium_masks',
    'pgbouncer',
    'pgtle',
    'realtime',
    'storage',
    'supabase_functions',
    'supabase_migrations',
    'vault',
    'graphql',
    'graphql_public',
    'pgmq_public',
    'supamode',
)


def _split_csv(value):
    return tuple(item.strip() for item in value.split(',') if item.strip())


class Config:
    """환경 변수(.env 포함)에서 읽어오는 엔진 설정값."""

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///rbac_engine.db")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # 보호 스키마는 select 외의 액션을 허용하지 않습니다.
    PROTECTED_SCHEMAS = frozenset(
        _split_csv(os.getenv("PROTECTED_SCHEMAS", "")) or DEFAULT_PROTECTED_SCHEMAS
    )

    # 'segment' 또는 'like'
    STORAGE_PATH_PATTERN_SYNTAX = os.getenv("STORAGE_PATH_PATTERN_SYNTAX", "segment")

    # 폴더 삭제 시 하위 트리 탐색 한도
    MAX_TOTAL_FILES = int(os.getenv("MAX_TOTAL_FILES", "1000"))
    MAX_FOLDERS_PROCESSED = int(os.getenv("MAX_FOLDERS_PROCESSED", "100"))
    MAX_BATCH_SIZE = int(os.getenv("MAX_BATCH_SIZE", "10"))
    LIST_PAGE_LIMIT = int(os.getenv("LIST_PAGE_LIMIT", "100"))

    # 한 번의 삭제 요청 한도
    MAX_DELETE_BATCH = int(os.getenv("MAX_DELETE_BATCH", "50"))
    MAX_DELETION_FILES = int(os.getenv("MAX_DELETION_FILES", "1000"))

    PERMISSION_CACHE_ENABLED = os.getenv("PERMISSION_CACHE_ENABLED", "false").lower() == "true"


def configure_logging(level=None):
    """애플리케이션 진입점에서 한 번 호출하여 로깅 포맷과 레벨을 설정합니다."""
    logging.basicConfig(
        level=level or Config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
