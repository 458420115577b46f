from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import backoffice.persistence.db as db
from backoffice.persistence.models import Base


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    return tmp_path_factory.mktemp("db") / "test.sqlite"


@pytest.fixture(scope="session", autouse=True)
def configure_test_engine(test_db_path: Path):
    engine = db.create_engine_from_url(f"sqlite+pysqlite:///{test_db_path}")
    TestSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

    db.engine = engine
    db.SessionLocal = TestSessionLocal

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_tables(configure_test_engine):
    # every test starts from an empty store
    with db.engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
    yield


@pytest.fixture()
def client(configure_test_engine):
    from backoffice.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture()
def session(configure_test_engine):
    with db.session_scope() as s:
        yield s


@pytest.fixture()
def po_payload():
    def build(supplier_id: str = "SUP-1", **overrides):
        payload = {
            "supplier_id": supplier_id,
            "tax_rate": "0",
            "items": [
                {"product_id": "P-1", "product_name": "Rice 25kg", "quantity_ordered": 2, "unit_cost": "500.00"},
                {"product_id": "P-2", "product_name": "Sugar 1kg", "quantity_ordered": 10, "unit_cost": "50"},
            ],
        }
        payload.update(overrides)
        return payload

    return build
