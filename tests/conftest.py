"""
Pytest fixtures for the expense routing test suite.

Provides:
- In-memory SQLite engine and session for unit and service tests
- File-backed SQLite session factory for real-commit / concurrency tests
- Deterministic clock, settings and the RoutingFactory data builder
- Structured log capture
"""

import json
import logging
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session, sessionmaker

from expense_routing.config import RoutingSettings
from expense_routing.db.engine import (
    create_configured_engine,
    create_tables,
    drop_tables,
)
from expense_routing.domain.clock import DeterministicClock
from expense_routing.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from tests.factories import RoutingFactory


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "concurrency: real threads against a file-backed database"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture expense_routing logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, engine):
            engine.decide(...)
            logs = captured_logs()
            assert any(r["message"] == "decision_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("expense_routing")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_configured_engine("sqlite://")
    create_tables(engine)
    yield engine
    drop_tables(engine)
    engine.dispose()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """Single session on the in-memory database.

    The in-memory database lives on one shared connection, so tests using
    this fixture must not open a second session concurrently.
    """
    sess = Session(bind=db_engine, expire_on_commit=False)
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def file_engine(tmp_path):
    """File-backed SQLite database: real commits, one connection per session."""
    engine = create_configured_engine(f"sqlite:///{tmp_path / 'routing.db'}")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(file_engine) -> sessionmaker[Session]:
    return sessionmaker(bind=file_engine, expire_on_commit=False)


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


@pytest.fixture
def settings():
    return RoutingSettings()


@pytest.fixture
def factory(session, clock) -> RoutingFactory:
    return RoutingFactory(session, clock)
