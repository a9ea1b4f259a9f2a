import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from microfisc.database import Base, make_engine
from microfisc.declarations import DeclarationAggregator
from microfisc.dependencies import get_store
from microfisc.main import app
from microfisc.store import SqlRecordStore
from microfisc.tax.rates import load_rate_book


@pytest.fixture
def rate_book():
    return load_rate_book()


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return SqlRecordStore(session_factory)


@pytest.fixture
def aggregator(store, rate_book):
    return DeclarationAggregator(store, rate_book)


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()
