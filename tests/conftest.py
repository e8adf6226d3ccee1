"""Pytest configuration and fixtures."""

import pytest
from pathlib import Path
from fastapi.testclient import TestClient
import tempfile

from dbexplorer.main import app
from dbexplorer.config import settings
from dbexplorer.database import metadata_db as app_metadata_db
from dbexplorer.dependencies import get_pool_registry, get_prober
from dbexplorer.targets import ConnectionProber, PoolRegistry

from fakes import VALID_CONNECTION, FakePoolFactory


@pytest.fixture
def temp_data_dir(monkeypatch):
    """Create temporary data directories for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        data_dir = Path(tmpdir) / "data"
        data_dir.mkdir(parents=True, exist_ok=True)
        metadata_db_path = data_dir / "metadata.duckdb"

        monkeypatch.setattr(settings, "data_dir", data_dir)
        monkeypatch.setattr(settings, "metadata_db_path", metadata_db_path)

        yield {
            "data_dir": data_dir,
            "metadata_db_path": metadata_db_path,
        }


@pytest.fixture
def missing_data_dir(monkeypatch):
    """Configure settings with a data directory that does not exist."""
    nonexistent = Path("/nonexistent/path/that/does/not/exist")
    monkeypatch.setattr(settings, "data_dir", nonexistent)
    yield nonexistent


@pytest.fixture
def metadata_db(temp_data_dir):
    """Create MetadataDB instance with temporary storage."""
    from dbexplorer.database import MetadataDB

    # Reset singleton for testing
    MetadataDB._instance = None

    db = MetadataDB()
    db.initialize()

    yield db

    # Cleanup singleton after test
    MetadataDB._instance = None


@pytest.fixture
def pool_factory():
    """Fake target side shared by the registry and the prober."""
    return FakePoolFactory()


@pytest.fixture
def registry(pool_factory):
    """Pool registry backed by the application's metadata store and fake targets."""
    return PoolRegistry(
        app_metadata_db.get_connection,
        pool_factory,
        on_pool_created=app_metadata_db.mark_connected,
        on_pool_evicted=app_metadata_db.mark_disconnected,
    )


@pytest.fixture
def prober(pool_factory):
    return ConnectionProber(pool_factory, timeout=1.0)


@pytest.fixture
def client(temp_data_dir, registry, prober):
    """Test client with target access routed to the fakes."""
    app.dependency_overrides[get_pool_registry] = lambda: registry
    app.dependency_overrides[get_prober] = lambda: prober

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def created_connection(client):
    """A stored connection profile pointing at a reachable fake target."""
    response = client.post("/api/connections", json=VALID_CONNECTION)
    assert response.status_code == 201
    return response.json()
