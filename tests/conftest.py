"""
Shared pytest fixtures for sqlstore tests.

This module provides:
- An in-memory SQLite engine with a ``widgets`` table scoped by ``tenants``
- ``Storage`` fixtures (unscoped and scoped)
- Structlog reset between tests

Models used across test modules live in ``tests/models.py``.
"""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
import structlog
from sqlalchemy import text
from sqlalchemy.engine import Engine

from sqlstore.store.database import create_store_engine
from sqlstore.store.object import Scope
from sqlstore.store.storage import Storage

WIDGETS_DDL = """
CREATE TABLE widgets (
    tenants TEXT NOT NULL DEFAULT '',
    name TEXT NOT NULL,
    uid TEXT,
    description TEXT,
    creationTimestamp DATETIME,
    deletionTimestamp DATETIME,
    labels TEXT,
    annotations TEXT,
    finalizers TEXT,
    ownerReferences TEXT,
    value INTEGER NOT NULL DEFAULT 0,
    status TEXT,
    UNIQUE (tenants, name)
)
"""


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark every test without an explicit marker as a unit test."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)
        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Restore structlog defaults after each test."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """In-memory SQLite engine with the ``widgets`` table."""
    eng = create_store_engine("sqlite://")
    with eng.begin() as conn:
        conn.execute(text(WIDGETS_DDL))
    yield eng
    eng.dispose()


@pytest.fixture
def storage(engine: Engine) -> Storage:
    """Unscoped storage over the test engine."""
    return Storage(engine)


@pytest.fixture
def acme(storage: Storage) -> Storage:
    """Storage scoped to tenant ``acme``."""
    return storage.scope(Scope("tenants", "acme"))


@pytest.fixture
def globex(storage: Storage) -> Storage:
    """Storage scoped to tenant ``globex``."""
    return storage.scope(Scope("tenants", "globex"))
