from apscheduler.triggers.cron import CronTrigger
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "postgresql+psycopg://catalog@/catalog_sync?host=/var/run/postgresql"

    # 피드 저장소 (supabase | local)
    feed_storage_backend: str = "supabase"
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    feed_storage_bucket: str = "feeds"
    feed_storage_local_dir: str = "var/feeds"
    feed_storage_public_base_url: str = ""
    feed_storage_upload_attempts: int = 3  # tenacity 재시도 횟수

    # 광고 플랫폼 전송 재시도
    sync_max_retries: int = 3  # 최초 시도 이후 추가 재시도 횟수
    sync_initial_retry_delay_seconds: float = 1.0
    sync_max_retry_delay_seconds: float = 30.0
    sync_retry_jitter_seconds: float = 0.0
    platform_request_timeout_seconds: float = 60.0

    # 스케줄러
    sync_default_schedule_cron: str = "0 */4 * * *"
    scheduler_max_concurrent_syncs: int = 4
    catalog_sync_lease_seconds: int = 900

    # 트리거 큐
    queue_batch_size: int = 1
    queue_visibility_timeout_seconds: int = 300
    queue_max_receive_count: int = 5
    queue_poll_interval_seconds: float = 5.0

    # 기능 플래그
    enable_realtime_ingestion_processing: bool = True
    enable_auto_quarantine: bool = False
    auto_quarantine_failure_threshold: int = 3

    # 플랫폼별 피드 제출 엔드포인트 / 자격증명 (자격증명 관리는 하지 않고 읽기만 한다)
    ad_platform_endpoints: dict[str, str] = {}
    ad_platform_credentials: dict[str, dict] = {}

    notification_webhook_url: str = ""

    @field_validator("database_url")
    @classmethod
    def validate_db_url(cls, v: str) -> str:
        if v and not v.startswith(("postgresql", "sqlite")):
            raise ValueError("DB URL은 'postgresql' 또는 'sqlite'로 시작해야 합니다.")
        return v

    @field_validator("feed_storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("supabase", "local"):
            raise ValueError("feed_storage_backend는 'supabase' 또는 'local'이어야 합니다.")
        return v

    @field_validator("sync_max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("sync_max_retries는 0 이상이어야 합니다.")
        return v

    @field_validator(
        "sync_initial_retry_delay_seconds",
        "sync_max_retry_delay_seconds",
        "sync_retry_jitter_seconds",
        "queue_poll_interval_seconds",
    )
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("대기 시간은 0 이상이어야 합니다.")
        return v

    @field_validator("sync_default_schedule_cron")
    @classmethod
    def validate_cron(cls, v: str) -> str:
        try:
            CronTrigger.from_crontab(v)
        except ValueError as e:
            raise ValueError(f"잘못된 cron 표현식입니다: {v} ({e})")
        return v

    @field_validator("queue_batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if not 1 <= v <= 10:
            raise ValueError("queue_batch_size는 1에서 10 사이여야 합니다.")
        return v

    @field_validator("scheduler_max_concurrent_syncs")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError("scheduler_max_concurrent_syncs는 1 이상이어야 합니다.")
        return v

    @field_validator("auto_quarantine_failure_threshold")
    @classmethod
    def validate_quarantine_threshold(cls, v: int) -> int:
        if v < 2:
            raise ValueError("auto_quarantine_failure_threshold는 2 이상이어야 합니다.")
        return v

    def get_platform_endpoint(self, platform: str) -> str | None:
        return self.ad_platform_endpoints.get(platform) or self.ad_platform_endpoints.get(platform.lower())

    def get_platform_credentials(self, platform: str) -> dict:
        return self.ad_platform_credentials.get(platform) or self.ad_platform_credentials.get(platform.lower()) or {}

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=False)


settings = Settings()
