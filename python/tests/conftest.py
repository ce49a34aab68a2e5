"""Pytest configuration and fixtures for pagegen tests.

Test isolation strategy:
- Each test gets a fresh in-memory SQLite database (schema from Base.metadata)
- One StaticPool connection is shared by the test session and the API's
  request sessions, so rows written in a test are visible to routes
- Redis and the trigger scheduler are replaced by in-process fakes
- Provider HTTP calls are mocked with respx; nothing leaves the process
"""

import os
import sys
from collections.abc import Generator
from pathlib import Path

# Settings are read at import time by pagegen.celery
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["PAGEGEN_ENV"] = "test"

# Add repo root to sys.path for importing top-level packages (e.g., apps)
_repo_root = Path(__file__).parent.parent.parent
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from pagegen.app import add_request_id_middleware, create_app
from pagegen.config import Settings, clear_settings_cache
from pagegen.db.models import Base
from pagegen.db.session import create_session_factory, set_session_factory
from pagegen.services.host import SqlContentHost
from pagegen.services.rate_limit import set_bulk_limiter
from tests.helpers import FakeRedis, RecordingScheduler, make_settings


@pytest.fixture(scope="session", autouse=True)
def _fresh_settings() -> Generator[None, None, None]:
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory database with the full schema."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def host(db_session: Session, settings: Settings) -> SqlContentHost:
    return SqlContentHost(db_session, site_url=settings.site_url)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def http_client() -> Generator[httpx.Client, None, None]:
    client = httpx.Client()
    yield client
    client.close()


@pytest.fixture
def client(
    session_factory: sessionmaker[Session],
    fake_redis: FakeRedis,
    scheduler: RecordingScheduler,
) -> Generator[TestClient, None, None]:
    """API client with fakes injected before the lifespan runs."""
    set_session_factory(session_factory)
    app = create_app(skip_internal_check=True)
    app.state.http_client = httpx.Client()
    app.state.redis_client = fake_redis
    app.state.scheduler = scheduler
    add_request_id_middleware(app, log_requests=False)

    with TestClient(app) as test_client:
        yield test_client

    set_session_factory(None)
    set_bulk_limiter(None)
