"""
스케줄 동기화

sync_default_schedule_cron 주기로 실행되어 due 상태인 카탈로그를 오케스트레이터로 넘깁니다.
- due: sync_enabled 이고 next_scheduled_sync_at 이 없거나 현재 이전
- 디스패치 직전에 카탈로그별 cron(없으면 기본값)으로 다음 실행 시각을 미리 갱신
- 동시 실행 수는 scheduler_max_concurrent_syncs 로 제한
- 다른 워커가 임대 중인 카탈로그는 건너뜀
"""
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
import logging
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from catalog_sync.enums import TriggerType
from catalog_sync.models import Catalog
from catalog_sync.services.exceptions import CatalogSyncInProgressError
from catalog_sync.services.sync_orchestrator import SyncOrchestrator
from catalog_sync.session_factory import session_factory as default_session_factory
from catalog_sync.settings import settings
from catalog_sync.timeutil import as_utc, utcnow

logger = logging.getLogger(__name__)


def next_fire_time(cron_expression: Optional[str], now: datetime) -> datetime:
    trigger = CronTrigger.from_crontab(cron_expression or settings.sync_default_schedule_cron, timezone=timezone.utc)
    return trigger.get_next_fire_time(None, as_utc(now))


class CatalogSyncScheduler:
    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        session_factory: Callable[[], Session] = default_session_factory,
        max_concurrent: Optional[int] = None,
    ):
        self.orchestrator = orchestrator
        self.session_factory = session_factory
        self.max_concurrent = settings.scheduler_max_concurrent_syncs if max_concurrent is None else max_concurrent
        self.scheduler = BackgroundScheduler(timezone=timezone.utc)
        self.is_running = False

    def claim_due_catalogs(self, now: Optional[datetime] = None) -> list[tuple[str, str, str]]:
        """due 카탈로그를 고르고 next_scheduled_sync_at 을 다음 cron 시각으로 옮긴다."""
        now = as_utc(now) if now is not None else utcnow()
        with self.session_factory() as session:
            catalogs = session.scalars(
                select(Catalog)
                .where(Catalog.sync_enabled.is_(True))
                .where(or_(Catalog.next_scheduled_sync_at.is_(None), Catalog.next_scheduled_sync_at <= now))
                .order_by(Catalog.next_scheduled_sync_at, Catalog.id)
            ).all()

            due: list[tuple[str, str, str]] = []
            for catalog in catalogs:
                try:
                    catalog.next_scheduled_sync_at = next_fire_time(catalog.sync_schedule_cron, now)
                except ValueError as e:
                    logger.error(f"[SCHEDULER] Catalog {catalog.id} has invalid cron {catalog.sync_schedule_cron!r}: {e}")
                    catalog.next_scheduled_sync_at = next_fire_time(None, now)
                due.append((str(catalog.id), catalog.merchant_id, catalog.ad_platform.value))
            session.commit()
        return due

    def _run_one(self, catalog_id: str, merchant_id: str, platform: str) -> str:
        try:
            result = self.orchestrator.run_sync(
                catalog_id,
                merchant_id,
                platform,
                trigger_type=TriggerType.SCHEDULED_SYNC_JOB_ENQUEUED,
            )
            return result.status.value
        except CatalogSyncInProgressError:
            logger.info(f"[SCHEDULER] Catalog {catalog_id} is already syncing. Skipping.")
            return "skipped"

    def run_due_syncs(self, now: Optional[datetime] = None) -> dict[str, int]:
        due = self.claim_due_catalogs(now)
        stats = {"due": len(due), "dispatched": 0, "skipped": 0, "errors": 0}
        if not due:
            logger.info("[SCHEDULER] No catalogs due for sync")
            return stats

        logger.info(f"[SCHEDULER] Dispatching {len(due)} due catalogs (max concurrency {self.max_concurrent})")
        with ThreadPoolExecutor(max_workers=self.max_concurrent, thread_name_prefix="catalog-sync") as pool:
            futures = {pool.submit(self._run_one, *entry): entry[0] for entry in due}
            for future in as_completed(futures):
                catalog_id = futures[future]
                try:
                    outcome = future.result()
                except Exception as e:
                    stats["errors"] += 1
                    logger.error(f"[SCHEDULER] Scheduled sync for catalog {catalog_id} failed: {e}", exc_info=True)
                    continue
                if outcome == "skipped":
                    stats["skipped"] += 1
                else:
                    stats["dispatched"] += 1

        logger.info(f"[SCHEDULER] Run finished: {stats}")
        return stats

    def start(self, cron_expression: Optional[str] = None) -> None:
        if self.is_running:
            logger.warning("[SCHEDULER] Scheduler is already running")
            return
        trigger = CronTrigger.from_crontab(cron_expression or settings.sync_default_schedule_cron, timezone=timezone.utc)
        self.scheduler.add_job(
            self.run_due_syncs,
            trigger=trigger,
            id="catalog_scheduled_sync",
            name="Catalog scheduled sync",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        self.is_running = True
        logger.info(f"[SCHEDULER] Started with schedule {cron_expression or settings.sync_default_schedule_cron}")

    def stop(self) -> None:
        if self.is_running:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("[SCHEDULER] Stopped")
