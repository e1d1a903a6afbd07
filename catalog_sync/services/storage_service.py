"""
피드 저장소

렌더링된 피드를 저장하고 조회 가능한 URL 을 반환합니다.
키 형식: feeds/{merchant_id}/{catalog_id}/{epoch_ms}_{file_name}
"""
import logging
from pathlib import Path
import time
from typing import Optional, Protocol

import httpx
from supabase import Client, create_client
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from catalog_sync.services.exceptions import ConfigurationError, StorageError
from catalog_sync.settings import settings

logger = logging.getLogger(__name__)


class FeedStorage(Protocol):
    def upload(self, content: str, file_name: str, content_type: str, merchant_id: str, catalog_id: str) -> str:
        ...


def build_storage_key(merchant_id: str, catalog_id: str, file_name: str, epoch_ms: Optional[int] = None) -> str:
    if epoch_ms is None:
        epoch_ms = int(time.time() * 1000)
    return f"feeds/{merchant_id}/{catalog_id}/{epoch_ms}_{file_name}"


class SupabaseFeedStorage:
    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        bucket: Optional[str] = None,
        client: Optional[Client] = None,
    ):
        self.url = url if url is not None else settings.supabase_url
        self.key = key if key is not None else settings.supabase_service_role_key
        self.bucket = bucket or settings.feed_storage_bucket
        self.client: Optional[Client] = client

        if self.client is None:
            if not self.url or not self.key:
                logger.warning("[STORAGE] Supabase credentials not set. Feed storage disabled.")
            else:
                self.client = create_client(self.url, self.key)

    @retry(
        stop=stop_after_attempt(settings.feed_storage_upload_attempts),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((httpx.TransportError, ConnectionError, TimeoutError)),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            f"[STORAGE] 업로드 재시도 중... ({retry_state.attempt_number}회째): {retry_state.outcome.exception()}"
        ),
    )
    def _put_object(self, path: str, data: bytes, content_type: str) -> None:
        self.client.storage.from_(self.bucket).upload(
            path=path,
            file=data,
            file_options={"content-type": content_type},
        )

    def upload(self, content: str, file_name: str, content_type: str, merchant_id: str, catalog_id: str) -> str:
        if not self.client:
            raise ConfigurationError("Supabase storage client is not initialized", backend="supabase")

        path = build_storage_key(merchant_id, catalog_id, file_name)
        try:
            self._put_object(path, content.encode("utf-8"), content_type)
        except Exception as e:
            logger.error(f"[STORAGE] Failed to upload feed {path}: {e}")
            raise StorageError(f"Failed to upload feed: {e}", file_name=file_name) from e

        public_url = self.client.storage.from_(self.bucket).get_public_url(path)
        logger.info(f"[STORAGE] Uploaded feed {path}")
        return public_url


class LocalFeedStorage:
    """개발용 로컬 디렉터리 저장소"""

    def __init__(self, base_dir: Optional[str] = None, public_base_url: Optional[str] = None):
        self.base_dir = Path(base_dir or settings.feed_storage_local_dir)
        self.public_base_url = (
            public_base_url if public_base_url is not None else settings.feed_storage_public_base_url
        ).rstrip("/")

    def upload(self, content: str, file_name: str, content_type: str, merchant_id: str, catalog_id: str) -> str:
        key = build_storage_key(merchant_id, catalog_id, file_name)
        target = self.base_dir / key
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to write feed: {e}", file_name=file_name) from e

        logger.info(f"[STORAGE] Wrote feed {target}")
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return target.resolve().as_uri()


def create_feed_storage() -> FeedStorage:
    if settings.feed_storage_backend == "local":
        return LocalFeedStorage()
    return SupabaseFeedStorage()
