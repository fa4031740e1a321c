"""
Pytest fixtures for the inventory kernel test suite.

Provides:
- Structured logging capture
- Deterministic clock
- In-memory stores and a wired InventoryAllocationService
- Item / transaction factories
- SQLite-backed SQL stores (one database file per test)
"""

import json
import logging
from io import StringIO

import pytest

from inventory_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.domain.dtos import Item, Transaction
from inventory_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from inventory_kernel.services.allocation_service import InventoryAllocationService
from inventory_kernel.services.audit_emitter import InMemoryAuditEmitter
from inventory_kernel.services.retry_service import RetryPolicy
from inventory_kernel.stores.memory import InMemoryItemStore, InMemoryTransactionStore
from inventory_kernel.stores.sql import SqlItemStore, SqlTransactionStore

TEST_ACTOR = "tester@example.com"

# No sleeping between retries in tests
FAST_RETRY = RetryPolicy(backoff_base_seconds=0)


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
    Capture inventory_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.allocate_item("I1", "P1")
            logs = captured_logs()
            assert any(r["message"] == "allocation_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("inventory_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "postgres: mark test as requiring PostgreSQL")
    config.addinivalue_line("markers", "slow: mark test as slow")


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def item_store():
    return InMemoryItemStore()


@pytest.fixture
def transaction_store():
    return InMemoryTransactionStore()


@pytest.fixture
def audit():
    return InMemoryAuditEmitter()


@pytest.fixture
def service(item_store, transaction_store, audit, clock):
    return InventoryAllocationService(
        item_store,
        transaction_store,
        audit_emitter=audit,
        clock=clock,
        retry_policy=FAST_RETRY,
    )


@pytest.fixture
def make_item(item_store):
    """
    Create an item in the item store.

    Usage::

        item = make_item("I1", purchase_price="500.00")
    """

    def _make(item_id: str, **fields) -> Item:
        return item_store.create_item(Item(item_id=item_id, **fields))

    return _make


@pytest.fixture
def make_transaction(transaction_store):
    def _make(transaction_id: str, direction="Purchase", **fields) -> Transaction:
        return transaction_store.create_transaction(
            Transaction(transaction_id=transaction_id, direction=direction, **fields)
        )

    return _make


# =============================================================================
# SQL fixtures
# =============================================================================


@pytest.fixture
def sql_session_factory(tmp_path):
    """Fresh SQLite database with all tables, torn down after the test."""
    init_engine_from_url(f"sqlite:///{tmp_path / 'inventory.db'}")
    create_tables()
    yield get_session_factory()
    reset_engine()


@pytest.fixture
def sql_item_store(sql_session_factory):
    return SqlItemStore(sql_session_factory)


@pytest.fixture
def sql_transaction_store(sql_session_factory):
    return SqlTransactionStore(sql_session_factory)
