"""Common test fixtures for the NoteGraph MCP server."""

import tempfile
from pathlib import Path

import pytest

from notegraph_mcp.config import config
from notegraph_mcp.models.db_models import init_db
from notegraph_mcp.observability import metrics
from notegraph_mcp.services.graph_service import GraphService
from notegraph_mcp.services.import_service import ImportService
from notegraph_mcp.services.reindex_service import ReindexService
from notegraph_mcp.storage.unit_of_work import sqlalchemy_uow_factory, store_key_for
from tests.fakes import InMemoryStore


@pytest.fixture(autouse=True)
def _isolated_metrics(tmp_path, monkeypatch):
    """Keep the global metrics collector away from ~/.notegraph."""
    monkeypatch.setattr(metrics, "_metrics_file", tmp_path / "metrics.json")
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def temp_dirs():
    """Create temporary directories for notes and database."""
    with tempfile.TemporaryDirectory() as notes_dir:
        with tempfile.TemporaryDirectory() as db_dir:
            yield Path(notes_dir), Path(db_dir)


@pytest.fixture
def test_config(temp_dirs, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    notes_dir, db_dir = temp_dirs
    monkeypatch.setattr(config, "notes_dir", notes_dir)
    monkeypatch.setattr(config, "database_path", db_dir / "test_notegraph.db")
    monkeypatch.setattr(config, "log_dir", db_dir / "logs")
    monkeypatch.setattr(config, "record_runs", True)
    yield config


@pytest.fixture
def db_engine(test_config):
    """File-backed SQLite engine with the schema created."""
    engine = init_db(test_config.get_db_url())
    yield engine
    engine.dispose()


@pytest.fixture
def uow_factory(db_engine):
    return sqlalchemy_uow_factory(db_engine)


@pytest.fixture
def import_service(uow_factory):
    return ImportService(uow_factory)


@pytest.fixture
def reindex_service(uow_factory, db_engine):
    return ReindexService(uow_factory, store_key=store_key_for(db_engine))


@pytest.fixture
def graph_service(uow_factory):
    return GraphService(uow_factory)


@pytest.fixture
def notes_dir(test_config):
    return test_config.notes_dir


@pytest.fixture
def write_note(notes_dir):
    """Write a Markdown file below the notes directory and return its path."""

    def _write(name: str, content: str) -> Path:
        path = notes_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def memory_store():
    """In-memory store for exercising the services without SQL."""
    return InMemoryStore()
