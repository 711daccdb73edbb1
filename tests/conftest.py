"""
Pytest fixtures for the workforce PO test suite.

Provides:
- In-memory SQLite engine / session factory with all tables created
- SqlAmendmentStore and seed helpers for projects and assignments
- DeterministicClock pinned to a known day
- Structured log capture

SQLite is used throughout; the engine comes from ``build_engine`` so the
single shared connection is usable from ``asyncio.to_thread`` workers.
"""

import json
import logging
from datetime import date, datetime
from io import StringIO
from uuid import uuid4

import pytest
from sqlalchemy.orm import sessionmaker

from workforce_kernel.db.base import Base
from workforce_kernel.db.engine import build_engine, session_scope
from workforce_kernel.domain.clock import DeterministicClock
from workforce_kernel.domain.types import ProjectStatus
from workforce_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from workforce_kernel.models import EmployeeProjectModel, ProjectModel
from workforce_kernel.services.amendment_store import SqlAmendmentStore

# Day used by most scenarios; matches the worked example in the docs.
TODAY = date(2024, 8, 15)


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
    Capture workforce logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            logs = captured_logs()
            assert any(r["message"] == "po_recalc_run_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("workforce")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: mark test as a longer-running property test"
    )


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    eng = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def store(session_factory):
    return SqlAmendmentStore(session_factory)


@pytest.fixture
def clock():
    # Naive: SQLite drops tzinfo, and Clock.today() treats naive as local.
    return DeterministicClock(datetime(2024, 8, 15, 9, 30, 0))


# =============================================================================
# Seed helpers
# =============================================================================


@pytest.fixture
def make_project(session_factory):
    """Insert a project and return its id."""

    def _make(
        name: str = "Apollo",
        client: str = "Acme Corp",
        status: ProjectStatus = ProjectStatus.ACTIVE,
    ):
        project_id = uuid4()
        with session_scope(session_factory) as session:
            session.add(
                ProjectModel(
                    id=project_id,
                    name=name,
                    client=client,
                    status=status.value,
                    start_date=date(2024, 1, 1),
                )
            )
        return project_id

    return _make


@pytest.fixture
def make_assignment(session_factory):
    """Insert an employee-project assignment and return its id."""

    def _make(project_id, employee_id=None, allocation_percentage: int = 100):
        assignment_id = uuid4()
        with session_scope(session_factory) as session:
            session.add(
                EmployeeProjectModel(
                    id=assignment_id,
                    employee_id=employee_id or uuid4(),
                    project_id=project_id,
                    allocation_percentage=allocation_percentage,
                    start_date=date(2024, 1, 1),
                )
            )
        return assignment_id

    return _make
