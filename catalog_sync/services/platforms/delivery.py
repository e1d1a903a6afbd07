"""
광고 플랫폼 전송 어댑터

일시적 오류일 때만 지수 백오프로 재시도합니다.
- 최초 시도 + 최대 max_retries 회 추가 시도
- 대기 시간은 initial_delay 부터 매 재시도마다 2배, max_delay 로 상한
- 분류되지 않은 예외는 일시적 오류로 간주
"""
from dataclasses import dataclass, field
import logging
import random
import time
from typing import Any, Callable, Optional

from catalog_sync.services.exceptions import DeliveryError
from catalog_sync.services.platforms.base import AdPlatformClient, SubmitResult
from catalog_sync.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class DeliveryOutcome:
    success: bool
    retries_attempted: int
    response: dict[str, Any] = field(default_factory=dict)
    error: Optional[DeliveryError] = None


class PlatformDeliveryAdapter:
    def __init__(
        self,
        max_retries: Optional[int] = None,
        initial_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        jitter: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_retries = settings.sync_max_retries if max_retries is None else max_retries
        self.initial_delay = settings.sync_initial_retry_delay_seconds if initial_delay is None else initial_delay
        self.max_delay = settings.sync_max_retry_delay_seconds if max_delay is None else max_delay
        self.jitter = settings.sync_retry_jitter_seconds if jitter is None else jitter
        self.sleep = sleep

    def _attempt(self, client: AdPlatformClient, feed_url: str, credentials: dict, catalog_name: str) -> SubmitResult:
        try:
            return client.submit_feed(feed_url, credentials, catalog_name)
        except DeliveryError as e:
            return SubmitResult.failure(e.message, code=e.platform_error_code, is_transient=e.is_transient)
        except Exception as e:
            return SubmitResult.failure(str(e) or e.__class__.__name__, code=e.__class__.__name__, is_transient=True)

    def _backoff(self, retry_index: int) -> float:
        delay = self.initial_delay * (2 ** retry_index)
        if self.jitter > 0:
            delay += random.uniform(0, self.jitter)
        # 지터 포함 상한
        return min(delay, self.max_delay)

    def submit(
        self,
        client: AdPlatformClient,
        feed_url: str,
        credentials: dict[str, Any],
        catalog_name: str,
    ) -> DeliveryOutcome:
        platform = getattr(client, "platform", "unknown")
        retries = 0

        while True:
            result = self._attempt(client, feed_url, credentials, catalog_name)
            if result.success:
                if retries:
                    logger.info(f"[DELIVERY] {platform} accepted feed after {retries} retries")
                return DeliveryOutcome(success=True, retries_attempted=retries, response=result.response)

            logger.warning(
                f"[DELIVERY] {platform} attempt {retries + 1} failed "
                f"(transient={result.is_transient}, code={result.error_code}): {result.error_message}"
            )
            if not result.is_transient or retries >= self.max_retries:
                break

            self.sleep(self._backoff(retries))
            retries += 1

        error = DeliveryError(
            result.error_message or "Feed submission failed",
            platform=platform,
            platform_error_code=result.error_code,
            is_transient=result.is_transient,
            retries=retries,
        )
        return DeliveryOutcome(success=False, retries_attempted=retries, response=result.response, error=error)
