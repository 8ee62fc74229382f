# Shared fixtures: every test gets its own file-backed SQLite database so the
# native ON CONFLICT / RETURNING statements run for real.
import pytest
from fastapi.testclient import TestClient

from orderbook.config import Settings
from orderbook.main import create_app
from orderbook.repo import OrderRepository, init_db, make_engine


@pytest.fixture
def settings(tmp_path):
    return Settings(database_url=f"sqlite:///{tmp_path / 'orders.db'}", db_startup_timeout=0)


@pytest.fixture
def engine(settings):
    eng = make_engine(settings)
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def repo(engine, settings):
    return OrderRepository(engine, settings)


@pytest.fixture
def client(settings, engine):
    app = create_app(settings, engine=engine)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def seaport_order():
    """A minimal signed Seaport order payload (opaque to the service)."""
    return {
        "parameters": {
            "offerer": "0xAbC0000000000000000000000000000000000001",
            "zone": "0x0000000000000000000000000000000000000000",
            "offer": [{"itemType": 2, "token": "0x54a8", "identifierOrCriteria": "42"}],
            "consideration": [{"itemType": 0, "startAmount": "1000000000000000"}],
            "orderType": 0,
            "salt": "0x01",
        },
        "signature": "0xdeadbeef",
    }
