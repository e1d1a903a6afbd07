"""Pytest configuration and fixtures."""

import os

# catalog_sync.db 는 import 시점에 엔진을 만들므로 먼저 테스트용 설정을 주입한다
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("FEED_STORAGE_BACKEND", "local")

from decimal import Decimal
from typing import Callable

import pytest
from sqlalchemy import JSON, create_engine
from sqlalchemy.orm import Session, sessionmaker

from catalog_sync.enums import AdPlatform, FeedFormat, OutOfStockHandling
from catalog_sync.models import Catalog, CatalogBase, FeedSettings, OutOfStockRule, Product


def _patch_jsonb_to_json(base):
    """
    SQLite에서 JSONB를 JSON으로 변경하여 컴파일 오류 방지.
    테스트용으로만 사용.
    """
    from sqlalchemy.dialects.postgresql import JSONB

    for table in base.metadata.sorted_tables:
        for column in table.columns:
            if isinstance(column.type, JSONB):
                column.type = JSON()


@pytest.fixture(scope="function")
def test_engine(tmp_path):
    """
    테스트마다 새 SQLite 파일 DB.
    오케스트레이터/스케줄러는 자체 세션(스레드 포함)을 열기 때문에 메모리 DB 대신 파일을 쓴다.
    """
    _patch_jsonb_to_json(CatalogBase)
    engine = create_engine(
        f"sqlite:///{tmp_path / 'catalog_sync.db'}",
        connect_args={"check_same_thread": False},
        echo=False,
    )
    CatalogBase.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        CatalogBase.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine) -> Callable[[], Session]:
    return sessionmaker(bind=test_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture(scope="function")
def test_session(session_factory) -> Session:
    """
    테스트용 데이터베이스 세션 fixture.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@pytest.fixture(scope="function")
def db_session(test_session: Session):
    """test_session alias"""
    yield test_session


@pytest.fixture
def make_product(test_session: Session):
    def _make(product_id: str, merchant_id: str = "m-1", **overrides) -> Product:
        values = dict(
            id=product_id,
            merchant_id=merchant_id,
            title=f"Product {product_id}",
            description=f"Description of {product_id}",
            price=Decimal("10.99"),
            currency="USD",
            availability="in_stock",
            stock_level=5,
            image_url=f"https://cdn.example.com/{product_id}.jpg",
            product_url=f"https://shop.example.com/p/{product_id}",
        )
        values.update(overrides)
        product = Product(**values)
        test_session.add(product)
        test_session.commit()
        return product

    return _make


@pytest.fixture
def make_catalog(test_session: Session):
    def _make(
        merchant_id: str = "m-1",
        product_ids: list[str] | None = None,
        ad_platform: AdPlatform = AdPlatform.GOOGLE_ADS,
        feed_format: FeedFormat = FeedFormat.CSV,
        handling: OutOfStockHandling = OutOfStockHandling.EXCLUDE_FROM_FEED,
        allowance_days: int | None = None,
        name: str = "Summer Sale",
        **overrides,
    ) -> Catalog:
        catalog = Catalog(
            merchant_id=merchant_id,
            name=name,
            ad_platform=ad_platform,
            feed_settings=FeedSettings(format=feed_format),
            out_of_stock_rule=OutOfStockRule(handling=handling, temporary_allowance_days=allowance_days),
            **overrides,
        )
        for product_id in product_ids or []:
            catalog.add_product_item(product_id)
        test_session.add(catalog)
        test_session.commit()
        return catalog

    return _make


# 테스트 마커 정의
def pytest_configure(config):
    """Pytest 마커 등록."""
    config.addinivalue_line("markers", "unit: 단위 테스트 (DB 불필요)")
    config.addinivalue_line("markers", "integration: 통합 테스트 (실제 DB/API 필요)")
    config.addinivalue_line("markers", "slow: 느린 테스트 (> 1분)")
