"""
Tests for inventory_config: YAML loading, validation, checksums, the
INVENTORY_CONFIG_TRACE log line and the config -> kernel bridges.
"""

from decimal import Decimal

import pytest
import yaml

from inventory_config import get_active_settings
from inventory_config.bridges import (
    build_allocation_service,
    build_audit_emitter,
    build_retry_policy,
    build_stores,
)
from inventory_config.loader import compute_checksum, parse_settings, parse_tax_rate
from inventory_kernel.db.engine import create_tables, reset_engine
from inventory_kernel.domain.dtos import Item
from inventory_kernel.services.audit_emitter import (
    InMemoryAuditEmitter,
    LoggingAuditEmitter,
    SqlAuditEmitter,
)
from inventory_kernel.stores.memory import InMemoryItemStore, InMemoryTransactionStore
from inventory_kernel.stores.sql import SqlItemStore, SqlTransactionStore


def write_settings(tmp_path, **sections):
    data = {"settings_id": "test", "version": 2, **sections}
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaultSettings:
    def test_packaged_defaults(self):
        settings = get_active_settings()

        assert settings.settings_id == "default"
        assert settings.version == 1
        assert settings.retry.max_conflict_attempts == 5
        assert settings.retry.backoff_base_seconds == 0.05
        assert settings.reconciliation.max_attempts == 5
        assert settings.reconciliation.default_tax_rate_pct is None
        assert settings.business.name == "Design Business"
        assert settings.audit.sink == "logging"
        assert settings.logging.level == "INFO"
        assert settings.database.url is None
        assert len(settings.checksum) == 64

    def test_trace_logged(self, captured_logs):
        settings = get_active_settings()

        [trace] = [r for r in captured_logs() if r["message"] == "INVENTORY_CONFIG_TRACE"]
        assert trace["settings_id"] == "default"
        assert trace["checksum"] == settings.checksum
        assert trace["database_configured"] is False
        assert trace["settings_path"].endswith("default.yaml")

    def test_settings_frozen(self):
        settings = get_active_settings()
        with pytest.raises(AttributeError):
            settings.version = 3


class TestParsing:
    def test_sections_optional(self):
        settings = parse_settings({"settings_id": "bare", "version": 1})
        assert settings.audit.sink == "logging"
        assert settings.retry.max_unavailable_attempts == 3

    def test_custom_file(self, tmp_path):
        path = write_settings(
            tmp_path,
            engine={
                "retry": {"max_conflict_attempts": 9},
                "reconciliation": {"default_tax_rate_pct": "8.25"},
            },
            business={"name": "Acme Interiors"},
            audit={"sink": "MEMORY"},
            logging={"level": "debug"},
        )

        settings = get_active_settings(path)

        assert settings.settings_id == "test"
        assert settings.retry.max_conflict_attempts == 9
        assert settings.reconciliation.default_tax_rate_pct == Decimal("8.25")
        assert settings.business.name == "Acme Interiors"
        assert settings.audit.sink == "memory"
        assert settings.logging.level == "DEBUG"

    def test_required_keys(self):
        with pytest.raises(KeyError):
            parse_settings({"version": 1})
        with pytest.raises(KeyError):
            parse_settings({"settings_id": "x"})

    @pytest.mark.parametrize(
        "sections",
        [
            {"engine": {"retry": {"max_conflict_attempts": 0}}},
            {"engine": {"retry": {"backoff_base_seconds": -1}}},
            {"engine": {"reconciliation": {"default_tax_rate_pct": "-3"}}},
            {"business": {"name": "   "}},
            {"audit": {"sink": "kafka"}},
            {"logging": {"level": "LOUD"}},
        ],
    )
    def test_invalid_values(self, sections):
        with pytest.raises(ValueError):
            parse_settings({"settings_id": "bad", "version": 1, **sections})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_settings(tmp_path / "nope.yaml")

    @pytest.mark.parametrize("value, expected", [(None, None), ("", None), (10, Decimal("10"))])
    def test_tax_rate(self, value, expected):
        assert parse_tax_rate(value) == expected

    def test_tax_rate_not_a_number(self):
        with pytest.raises(ValueError):
            parse_tax_rate("ten")


class TestChecksum:
    def test_stable_across_key_order(self):
        a = {"settings_id": "x", "version": 1, "audit": {"sink": "memory"}}
        b = {"audit": {"sink": "memory"}, "version": 1, "settings_id": "x"}
        assert compute_checksum(a) == compute_checksum(b)

    def test_changes_with_content(self):
        a = {"settings_id": "x", "version": 1}
        b = {"settings_id": "x", "version": 2}
        assert compute_checksum(a) != compute_checksum(b)


class TestBridges:
    def test_retry_policy(self):
        settings = parse_settings(
            {"settings_id": "x", "version": 1,
             "engine": {"retry": {"max_conflict_attempts": 7, "backoff_base_seconds": 0}}}
        )
        policy = build_retry_policy(settings)
        assert policy.max_conflict_attempts == 7
        assert policy.backoff_for(3) == 0.0

    @pytest.mark.parametrize(
        "sink, emitter_type",
        [("memory", InMemoryAuditEmitter), ("logging", LoggingAuditEmitter)],
    )
    def test_audit_emitter(self, sink, emitter_type):
        settings = parse_settings({"settings_id": "x", "version": 1, "audit": {"sink": sink}})
        assert isinstance(build_audit_emitter(settings), emitter_type)

    def test_memory_stores_without_url(self):
        item_store, transaction_store = build_stores(get_active_settings())
        assert isinstance(item_store, InMemoryItemStore)
        assert isinstance(transaction_store, InMemoryTransactionStore)

    def test_sql_stores_and_sink(self, tmp_path):
        settings = parse_settings(
            {
                "settings_id": "x", "version": 1,
                "audit": {"sink": "sql"},
                "database": {"url": f"sqlite:///{tmp_path / 'inv.db'}"},
            }
        )
        try:
            item_store, transaction_store = build_stores(settings)
            create_tables()
            assert isinstance(item_store, SqlItemStore)
            assert isinstance(transaction_store, SqlTransactionStore)
            assert isinstance(build_audit_emitter(settings), SqlAuditEmitter)
        finally:
            reset_engine()

    def test_service_uses_configured_tax_and_name(self, tmp_path):
        path = write_settings(
            tmp_path,
            engine={
                "retry": {"backoff_base_seconds": 0},
                "reconciliation": {"default_tax_rate_pct": 10},
            },
            business={"name": "Acme Interiors"},
            audit={"sink": "memory"},
        )
        settings = get_active_settings(path)
        item_store, transaction_store = build_stores(settings)
        item_store.create_item(Item("I1", purchase_price="500.00"))

        service = build_allocation_service(settings, item_store, transaction_store)
        service.allocate_item("I1", "X")

        txn = transaction_store.get_transaction("INV_PURCHASE_X")
        assert txn.amount == "550.00"
        assert txn.description == "Acme Interiors Inventory Purchase"
