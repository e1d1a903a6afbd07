from sqlalchemy.orm import Session

from catalog_sync.db import SessionLocal


def session_factory() -> Session:
    return SessionLocal()
