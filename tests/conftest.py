"""Shared fixtures: in-memory repository, SQLite engine and API client."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from backend.models import Instrument
from backend.services.commission_engine import CustodyFees, FeeSchedule, OperationFees
from backend.services.repository import InMemoryRepository


@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def schedule() -> FeeSchedule:
    """0.5% / $150 minimum, custody exempt up to 2M at 0.25% monthly."""
    return FeeSchedule(
        name="test",
        broker="Test Broker",
        buy=OperationFees(0.005, 150.0, 0.21),
        sell=OperationFees(0.005, 150.0, 0.21),
        custody=CustodyFees(2_000_000.0, 0.0025, 300.0, 0.21),
    )


@pytest.fixture
def add_instrument(repo):
    def _add(symbol: str = "AAPL", **kwargs) -> Instrument:
        return repo.add(Instrument(symbol=symbol, company_name=kwargs.pop("company_name", f"{symbol} Inc."), **kwargs))
    return _add


@pytest.fixture
def sql_engine():
    import backend.models  # noqa: F401

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(sql_engine):
    with Session(sql_engine) as s:
        yield s


@pytest.fixture
def client(sql_engine, monkeypatch):
    """TestClient over the in-memory engine; lifespan (scheduler, bot) is not started."""
    from backend import database
    from backend.database import get_session
    from backend.main import app

    monkeypatch.setattr(database, "engine", sql_engine)
    database.seed_commission_configs(sql_engine)

    def _session_override():
        with Session(sql_engine, expire_on_commit=False) as s:
            yield s

    app.dependency_overrides[get_session] = _session_override
    yield TestClient(app)
    app.dependency_overrides.clear()
