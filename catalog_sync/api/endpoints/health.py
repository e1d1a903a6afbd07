import logging

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from catalog_sync.db import get_session
from catalog_sync.models import CatalogSyncMessage

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/system")
def get_system_health(session: Session = Depends(get_session)):
    """
    데이터베이스 연결 및 트리거 큐 적재 상태를 확인합니다.
    """
    db_ok = False
    queued = dead_letter = None
    try:
        counts = dict(
            session.execute(
                select(CatalogSyncMessage.status, func.count()).group_by(CatalogSyncMessage.status)
            ).all()
        )
        queued = counts.get("queued", 0)
        dead_letter = counts.get("dead_letter", 0)
        db_ok = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")

    return {
        "status": "healthy" if db_ok else "unhealthy",
        "database": "ok" if db_ok else "error",
        "queue": {"queued": queued, "deadLetter": dead_letter},
    }
