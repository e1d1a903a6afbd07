import argparse
import logging
import signal
import sys
import threading

from catalog_sync.enums import AdPlatform, FeedFormat, TriggerType
from catalog_sync.services.catalog_service import CatalogService
from catalog_sync.services.change_ingestion import ChangeIngestionService
from catalog_sync.services.exceptions import CatalogSyncError
from catalog_sync.services.queue_consumer import TriggerQueueConsumer
from catalog_sync.services.sync_orchestrator import SyncOrchestrator
from catalog_sync.services.sync_scheduler import CatalogSyncScheduler
from catalog_sync.session_factory import session_factory

logger = logging.getLogger("catalog_sync.cli")


def _stop_event() -> threading.Event:
    stop = threading.Event()

    def _handle(signum, frame):
        logger.info(f"[CLI] Received signal {signum}, shutting down")
        stop.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)
    return stop


def run_worker_command(args) -> None:
    """트리거 큐 컨슈머 실행"""
    orchestrator = SyncOrchestrator()
    consumer = TriggerQueueConsumer(orchestrator, ChangeIngestionService(), batch_size=args.batch_size)
    if args.once:
        processed = consumer.poll_once()
        logger.info(f"[CLI] Processed {processed} messages")
        return
    consumer.run_forever(_stop_event())


def run_scheduler_command(args) -> None:
    scheduler = CatalogSyncScheduler(SyncOrchestrator(), max_concurrent=args.max_concurrent)
    if args.once:
        stats = scheduler.run_due_syncs()
        logger.info(f"[CLI] Scheduled run finished: {stats}")
        return
    stop = _stop_event()
    scheduler.start(args.cron)
    try:
        stop.wait()
    finally:
        scheduler.stop()


def run_sync_command(args) -> None:
    result = SyncOrchestrator().run_sync(
        args.catalog_id,
        args.merchant_id,
        args.platform,
        trigger_type=TriggerType.MANUAL_SYNC,
    )
    logger.info(
        f"[CLI] Sync {result.history_id} finished: status={result.status.value}, retries={result.retries}, "
        f"feed={result.feed_url}, error={result.error_message}"
    )
    if result.status.value in ("FAILED", "QUARANTINED"):
        sys.exit(2)


def run_generate_feed_command(args) -> None:
    with session_factory() as session:
        url = CatalogService(session).generate_feed(args.merchant_id, args.catalog_id, args.format)
    print(url)


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
    )

    parser = argparse.ArgumentParser(description="Catalog sync operations CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    worker_parser = subparsers.add_parser("worker", help="Consume sync trigger messages")
    worker_parser.add_argument("--batch-size", type=int, default=None)
    worker_parser.add_argument("--once", action="store_true", help="Process a single batch and exit")

    scheduler_parser = subparsers.add_parser("scheduler", help="Run scheduled catalog syncs")
    scheduler_parser.add_argument("--cron", default=None, help="Crontab expression (defaults to settings)")
    scheduler_parser.add_argument("--max-concurrent", type=int, default=None)
    scheduler_parser.add_argument("--once", action="store_true", help="Dispatch due catalogs once and exit")

    sync_parser = subparsers.add_parser("sync", help="Synchronize one catalog now")
    sync_parser.add_argument("catalog_id")
    sync_parser.add_argument("--merchant-id", required=True)
    sync_parser.add_argument("--platform", choices=[p.value for p in AdPlatform], default=None)

    feed_parser = subparsers.add_parser("generate-feed", help="Render and store a catalog feed")
    feed_parser.add_argument("catalog_id")
    feed_parser.add_argument("--merchant-id", required=True)
    feed_parser.add_argument("--format", choices=[f.value for f in FeedFormat], default=None)

    args = parser.parse_args()
    commands = {
        "worker": run_worker_command,
        "scheduler": run_scheduler_command,
        "sync": run_sync_command,
        "generate-feed": run_generate_feed_command,
    }
    if args.command not in commands:
        parser.print_help()
        sys.exit(1)

    try:
        commands[args.command](args)
    except CatalogSyncError as e:
        logger.error(f"[CLI] {e.error_code}: {e.message}")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"[CLI] Critical error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
