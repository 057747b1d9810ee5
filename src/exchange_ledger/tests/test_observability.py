from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

import pytest

from exchange_ledger.config.settings import AppConfig, EventBusConfig, MonitoringConfig
from exchange_ledger.datalake.storage import SQLiteStorage
from exchange_ledger.ledger.balances import InMemoryBalanceLedger
from exchange_ledger.ledger.errors import StateGateError
from exchange_ledger.ledger.pool import Pool
from exchange_ledger.ledger.roles import RoleAuthority
from exchange_ledger.ledger.transaction import TransactionManager
from exchange_ledger.monitoring import bootstrap_observability
from exchange_ledger.monitoring.alerts import AlertManager, AlertSeverity
from exchange_ledger.monitoring.event_bus import EventBus, EventSeverity, EventType
from exchange_ledger.monitoring.logger import (
    StructuredFormatter,
    correlation_scope,
    current_correlation_id,
    current_operation,
)
from exchange_ledger.monitoring.metrics import MetricsRegistry


class _Response:
    def raise_for_status(self) -> None:
        return None


class _RecordingSession:
    def __init__(self) -> None:
        self.posts: List[Dict[str, Any]] = []

    def post(self, url: str, json: Dict[str, Any], timeout: float) -> _Response:
        self.posts.append({"url": url, "json": json})
        return _Response()


def test_committed_events_are_persisted(
    tmp_path: Path, bus: EventBus, metrics: MetricsRegistry, transactions: TransactionManager
) -> None:
    storage = SQLiteStorage(tmp_path / "events.sqlite3")
    config = AppConfig(monitoring=MonitoringConfig(), event_bus=EventBusConfig(persist_events=True))
    bootstrap_observability(storage, config=config, event_bus=bus, metrics=metrics)
    ledger = InMemoryBalanceLedger(transactions)
    pool = Pool(
        "pool:usdc",
        "usdc",
        ledger=ledger,
        authority=RoleAuthority(transactions, "admin", name="pool:usdc"),
        transactions=transactions,
    )

    pool.set_depositing_enabled("admin", False)

    assert bus.flush()
    logs = storage.list_event_logs(limit=5, event_type="DepositingEnabled")
    assert len(logs) == 1
    assert logs[0].payload == {"enabled": False}
    assert logs[0].source == "pool:usdc"
    assert logs[0].correlation_id
    assert metrics.get("events.DepositingEnabled") == 1
    assert metrics.get("operations.pool.set_depositing_enabled.committed") == 1


def test_storage_filters_by_correlation_id(tmp_path: Path) -> None:
    storage = SQLiteStorage(tmp_path / "events.sqlite3")
    assert storage.list_event_logs() == []

    bus = EventBus(history_size=32)
    bus.attach_storage(storage)
    bus.publish(EventType.SWAP_ENABLED, {"enabled": True}, correlation_id="one")
    bus.publish(EventType.SWAP_ENABLED, {"enabled": False}, correlation_id="two")
    # Amounts beyond 64 bits survive the round trip.
    bus.publish(EventType.TOKENS_WITHDRAWN, {"amount": 2**200}, correlation_id="two")
    assert bus.flush()

    records = storage.list_event_logs(correlation_id="two")
    assert [record.event_type for record in records] == ["TokensWithdrawn", "SwapEnabled"]
    assert records[0].payload["amount"] == 2**200


def test_rejections_are_counted_and_alerted(
    bus: EventBus, metrics: MetricsRegistry, transactions: TransactionManager
) -> None:
    session = _RecordingSession()
    alerts = AlertManager(
        MonitoringConfig(webhook_urls=["https://hooks.example.com/ledger"], alert_throttle_seconds=60),
        session=session,
    )
    bus.attach_metrics(metrics)
    bus.attach_alert_manager(alerts)
    ledger = InMemoryBalanceLedger(transactions)
    pool = Pool(
        "pool:usdc",
        "usdc",
        ledger=ledger,
        authority=RoleAuthority(transactions, "admin", name="pool:usdc"),
        transactions=transactions,
        depositing_enabled=False,
    )

    for _ in range(2):
        with pytest.raises(StateGateError):
            pool.deposit("admin", 1)

    assert bus.flush()
    assert metrics.get("operations.pool.deposit.rejected") == 2
    assert metrics.get("rejections.state_gate") == 2
    rejected = bus.events(EventType.OPERATION_REJECTED)
    assert all(event.severity == EventSeverity.WARNING for event in rejected)
    # Identical rejections are throttled to one alert.
    assert len(session.posts) == 1
    assert session.posts[0]["url"] == "https://hooks.example.com/ledger"
    assert session.posts[0]["json"]["message"] == (
        "OperationRejected pool.deposit on pool:usdc: Depositing is currently disabled"
    )


def test_alert_manager_posts_to_slack_and_throttles() -> None:
    session = _RecordingSession()
    manager = AlertManager(
        MonitoringConfig(slack_webhook_url="https://hooks.slack.com/services/T000/B000/XXX", alert_throttle_seconds=60),
        session=session,
    )

    assert manager.send("pool drained", severity=AlertSeverity.CRITICAL, key="drain") is True
    assert manager.send("pool drained", severity=AlertSeverity.CRITICAL, key="drain") is False

    assert session.posts == [
        {
            "url": "https://hooks.slack.com/services/T000/B000/XXX",
            "json": {"text": "[CRITICAL] pool drained"},
        }
    ]


def test_subscribers_receive_committed_events(transactions: TransactionManager, bus: EventBus) -> None:
    received = []
    bus.subscribe(EventType.ROLE_GRANTED, received.append)

    RoleAuthority(transactions, "admin", name="swap")

    assert bus.flush()
    assert [event.payload["account"] for event in received] == ["admin"]


def test_structured_formatter_includes_correlation_and_extras() -> None:
    formatter = StructuredFormatter()
    record = logging.LogRecord("exchange_ledger.test", logging.WARNING, __file__, 1, "rejected %s", ("deposit",), None)
    record.correlation_id = "abc123"
    record.operation = "pool.deposit"

    payload = json.loads(formatter.format(record))

    assert payload["message"] == "rejected deposit"
    assert payload["level"] == "WARNING"
    assert payload["correlation_id"] == "abc123"
    assert payload["extra"] == {"operation": "pool.deposit"}


def test_correlation_scope_is_restored() -> None:
    assert current_correlation_id() == "-"
    with correlation_scope("tx-1"):
        assert current_correlation_id() == "tx-1"
    assert current_correlation_id() == "-"


def test_prometheus_export_sanitizes_metric_names() -> None:
    metrics = MetricsRegistry()
    metrics.increment("operations.pool.deposit.committed")
    metrics.gauge("pool.pool:usdc.balance", 3)
    metrics.observe("swap.token_one_amount", 100.0)

    output = metrics.export_prometheus()
    lines = [line for line in output.splitlines() if line]

    assert any(line.startswith("# TYPE operations_pool_deposit_committed counter") for line in lines)
    assert "operations.pool.deposit.committed" not in output
    assert any("pool_pool:usdc_balance" in line for line in lines)
    assert any("swap_token_one_amount" in line for line in lines)


def test_history_keeps_the_most_recent_events() -> None:
    bus = EventBus(history_size=16)
    for index in range(20):
        bus.publish(EventType.TOKEN_RATIO_CHANGED, {"token_ratio": index})
    assert bus.flush()

    recent = bus.history(limit=3)

    assert [event.payload["token_ratio"] for event in recent] == [17, 18, 19]
    assert len(bus.history(limit=100)) == 16


def test_metrics_keep_token_amounts_exact() -> None:
    metrics = MetricsRegistry()
    huge = 2**64 + 1

    metrics.gauge("pool.pool:usdc.balance", huge)
    metrics.gauge("stake.stake.total_staked", 5)
    metrics.add_amount("swap.royalty_fee_total", huge)
    metrics.add_amount("swap.royalty_fee_total", 1)

    assert metrics.get_gauge("pool.pool:usdc.balance") == huge
    assert metrics.get_amount("swap.royalty_fee_total") == huge + 1
    assert metrics.balances("pool") == {"pool:usdc.balance": huge}
    assert f"swap_royalty_fee_total {huge + 1}" in metrics.export_prometheus()


def test_operation_outcomes_are_counted_per_operation(
    transactions: TransactionManager, metrics: MetricsRegistry
) -> None:
    ledger = InMemoryBalanceLedger(transactions)
    pool = Pool(
        "pool:usdc",
        "usdc",
        ledger=ledger,
        authority=RoleAuthority(transactions, "admin", name="pool:usdc"),
        transactions=transactions,
    )
    ledger.mint("admin", "usdc", 10)
    ledger.approve("admin", pool.address, "usdc", 10)

    pool.deposit("admin", 10)
    pool.set_depositing_enabled("admin", False)
    with pytest.raises(StateGateError):
        pool.deposit("admin", 1)

    assert metrics.operation_outcomes("pool.deposit") == {"committed": 1, "rejected": 1}
    assert metrics.balances("pool") == {"pool:usdc.balance": 10}
    with pytest.raises(ValueError):
        metrics.record_operation("pool.deposit", "retried")


def test_transactions_tag_logs_with_the_operation(transactions: TransactionManager) -> None:
    seen = []

    with transactions.atomic("pool.deposit") as tx:
        seen.append((current_correlation_id(), current_operation()))

    assert seen == [(tx.correlation_id, "pool.deposit")]
    assert current_operation() is None

    record = logging.LogRecord("exchange_ledger.test", logging.INFO, __file__, 1, "deposited", (), None)
    record.correlation_id = tx.correlation_id
    record.ledger_operation = "pool.deposit"
    payload = json.loads(StructuredFormatter().format(record))
    assert payload["operation"] == "pool.deposit"
    assert "extra" not in payload
