# tests/conftest.py
import logging
from typing import List

import aiosqlite
import pytest
import pytest_asyncio

from dynamic_query.base.interfaces import QueryRepository
from dynamic_query.memory.base import MemoryRepository
from dynamic_query.sqlite.base import RelationMapping, SqliteRepository

from tests.create_sqlite_tables import create_project_tables
from tests.models import Project, sample_projects

# --- List of available implementation keys ---
AVAILABLE_IMPLEMENTATIONS = ["memory", "sqlite"]

PROJECT_RELATIONS = {"members": RelationMapping("members", "id", "project_id")}


# SQLite Fixture (Function Scoped)
@pytest_asyncio.fixture(scope="function")
async def sqlite_memory_db_conn():
    """Provides an in-memory aiosqlite database connection for testing."""
    conn = None
    try:
        conn = await aiosqlite.connect(":memory:")
        conn.row_factory = aiosqlite.Row
        yield conn
    finally:
        if conn:
            await conn.close()


@pytest_asyncio.fixture(scope="function")
async def sqlite_project_db(sqlite_memory_db_conn):
    """The in-memory connection with the project tables created."""
    await create_project_tables(sqlite_memory_db_conn)
    return sqlite_memory_db_conn


# --- Repository Factories (Function Scoped) ---


@pytest.fixture(scope="function")
def memory_repository_factory():
    """Factory for creating in-memory repositories."""

    def _create(entity_cls=Project, id_field="id"):
        return MemoryRepository(entity_type=entity_cls, id_field=id_field)

    return _create


@pytest.fixture(scope="function")
def sqlite_repository_factory(sqlite_project_db):
    """Factory for creating SQLite repositories over the project tables."""
    if not sqlite_project_db:
        pytest.skip("SQLite connection not available.")

    def _create(entity_cls=Project, id_field="id"):
        return SqliteRepository(
            db_connection=sqlite_project_db,
            table_name="projects",
            entity_type=entity_cls,
            id_field=id_field,
            relations=PROJECT_RELATIONS,
        )

    return _create


@pytest.fixture(params=AVAILABLE_IMPLEMENTATIONS)
def repository_factory(request):
    """Parametrized fixture to get the correct factory based on implementation key."""
    impl_key = request.param
    if impl_key == "memory":
        yield request.getfixturevalue("memory_repository_factory")
    elif impl_key == "sqlite":
        yield request.getfixturevalue("sqlite_repository_factory")
    else:
        raise ValueError(f"Unknown repository implementation key: {impl_key}")


@pytest_asyncio.fixture
async def repository(repository_factory, logger, projects) -> QueryRepository[Project]:
    """
    Provides a repository of the parametrized implementation, filled with the
    sample projects.
    """
    repo = repository_factory(Project)
    for project in projects:
        await repo.store(project, logger)
    return repo


# --- Logger Fixture ---


@pytest.fixture(scope="session")
def logger():
    """Create a test logger."""
    _logger = logging.getLogger("test_repo_logger")
    if not _logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.setLevel(logging.DEBUG)
        _logger.addHandler(handler)
        _logger.setLevel(logging.DEBUG)
        _logger.propagate = False
    return logging.LoggerAdapter(_logger, {})


# --- Sample Data ---


@pytest.fixture
def projects() -> List[Project]:
    """Four projects covering nulls, nested owners and member lists."""
    return sample_projects()


@pytest.fixture
def get_repo_type(repository):
    """Returns a string identifying the type of the repository under test."""
    if isinstance(repository, SqliteRepository):
        return "sqlite"
    elif isinstance(repository, MemoryRepository):
        return "memory"
    return "unknown"
