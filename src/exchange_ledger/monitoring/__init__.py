"""Monitoring package exports and helpers."""

from __future__ import annotations

from typing import Optional

from ..config.settings import AppConfig, get_app_config
from ..datalake.storage import StorageAdapter
from .alerts import AlertManager
from .event_bus import EVENT_BUS, EventBus
from .logger import configure_logging
from .metrics import METRICS, MetricsRegistry


def bootstrap_observability(
    storage: Optional[StorageAdapter] = None,
    *,
    config: Optional[AppConfig] = None,
    event_bus: Optional[EventBus] = None,
    metrics: Optional[MetricsRegistry] = None,
) -> AlertManager:
    """Configure logging, event persistence, metrics and alert routing on the bus."""

    app_config = config or get_app_config()
    configure_logging(app_config.monitoring)
    bus = event_bus or EVENT_BUS
    bus.resize_history(app_config.event_bus.history_size)
    manager = AlertManager(app_config.monitoring)
    bus.attach_metrics(metrics or METRICS)
    bus.attach_alert_manager(manager)
    if storage is not None and app_config.event_bus.persist_events:
        bus.attach_storage(storage)
    return manager


__all__ = ["bootstrap_observability", "EVENT_BUS", "METRICS"]
