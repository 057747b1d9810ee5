from __future__ import annotations

from datetime import datetime, timezone

import pytest

from exchange_ledger.ledger.balances import InMemoryBalanceLedger
from exchange_ledger.ledger.transaction import TransactionManager
from exchange_ledger.monitoring.event_bus import EventBus
from exchange_ledger.monitoring.metrics import MetricsRegistry

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def bus() -> EventBus:
    return EventBus(history_size=256)


@pytest.fixture
def metrics() -> MetricsRegistry:
    return MetricsRegistry()


@pytest.fixture
def transactions(bus: EventBus, metrics: MetricsRegistry) -> TransactionManager:
    return TransactionManager(event_bus=bus, metrics=metrics, clock=lambda: FIXED_NOW)


@pytest.fixture
def ledger(transactions: TransactionManager) -> InMemoryBalanceLedger:
    return InMemoryBalanceLedger(transactions)
