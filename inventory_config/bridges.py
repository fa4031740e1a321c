"""
Config -> Kernel Bridges.

Functions that convert EngineSettings into kernel inputs.  These live in
inventory_config (the producer) because the kernel must NEVER import
inventory_config.

Usage:
    from inventory_config import get_active_settings
    from inventory_config.bridges import build_allocation_service

    settings = get_active_settings()
    service = build_allocation_service(settings, item_store, transaction_store)
"""

from __future__ import annotations

import logging

from inventory_config.schema import EngineSettings
from inventory_kernel.db.engine import get_session_factory, init_engine_from_url
from inventory_kernel.domain.clock import Clock
from inventory_kernel.logging_config import configure_logging
from inventory_kernel.services.allocation_service import InventoryAllocationService
from inventory_kernel.services.audit_emitter import (
    AuditEmitter,
    InMemoryAuditEmitter,
    LoggingAuditEmitter,
    SqlAuditEmitter,
)
from inventory_kernel.services.retry_service import RetryPolicy
from inventory_kernel.stores.base import ItemStore, TransactionStore
from inventory_kernel.stores.memory import InMemoryItemStore, InMemoryTransactionStore
from inventory_kernel.stores.sql import SqlItemStore, SqlTransactionStore


def build_retry_policy(settings: EngineSettings) -> RetryPolicy:
    retry = settings.retry
    return RetryPolicy(
        max_conflict_attempts=retry.max_conflict_attempts,
        max_unavailable_attempts=retry.max_unavailable_attempts,
        backoff_base_seconds=retry.backoff_base_seconds,
        backoff_max_seconds=retry.backoff_max_seconds,
    )


def build_audit_emitter(settings: EngineSettings) -> AuditEmitter:
    """Build the configured audit sink. ``sql`` needs an initialized engine."""
    sink = settings.audit.sink
    if sink == "memory":
        return InMemoryAuditEmitter()
    if sink == "sql":
        return SqlAuditEmitter(get_session_factory())
    return LoggingAuditEmitter()


def build_stores(settings: EngineSettings) -> tuple[ItemStore, TransactionStore]:
    """
    SQL stores when a database url is configured, in-memory stores otherwise.

    Initializes the global engine as a side effect when a url is set.
    """
    db = settings.database
    if db.url is None:
        return InMemoryItemStore(), InMemoryTransactionStore()
    init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_pre_ping=db.pool_pre_ping,
    )
    factory = get_session_factory()
    return SqlItemStore(factory), SqlTransactionStore(factory)


def build_allocation_service(
    settings: EngineSettings,
    item_store: ItemStore,
    transaction_store: TransactionStore,
    clock: Clock | None = None,
    audit_emitter: AuditEmitter | None = None,
) -> InventoryAllocationService:
    return InventoryAllocationService(
        item_store,
        transaction_store,
        audit_emitter=audit_emitter or build_audit_emitter(settings),
        clock=clock,
        retry_policy=build_retry_policy(settings),
        business_name=settings.business.name,
        default_tax_rate_pct=settings.reconciliation.default_tax_rate_pct,
        reconcile_max_attempts=settings.reconciliation.max_attempts,
    )


def configure_kernel_logging(settings: EngineSettings) -> None:
    configure_logging(level=logging.getLevelName(settings.logging.level))
