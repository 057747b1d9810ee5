"""Internal event bus: the append-only sink for committed ledger events."""

from __future__ import annotations

import asyncio
import inspect
import logging
import queue
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Deque, Dict, List, Optional, Union

from ..datalake.schemas import EventLogRecord
from .alerts import AlertManager, AlertSeverity
from .metrics import MetricsRegistry

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..datalake.storage import StorageAdapter


class EventType(str, Enum):
    """State-change notifications emitted by the ledger components."""

    # Pool
    DEPOSITED = "Deposited"
    WITHDRAWN = "Withdrawn"
    DEPOSITING_ENABLED = "DepositingEnabled"
    # Stake
    REWARD_TOKENS_DEPOSITED = "RewardTokensDeposited"
    STAKED = "Staked"
    UNSTAKED = "Unstaked"
    INTEREST_RATE_CHANGED = "InterestRateChanged"
    STAKING_ENABLED = "StakingEnabled"
    UNSTAKING_ENABLED = "UnstakingEnabled"
    # Swap
    SWAPPED = "Swapped"
    SWAP_ENABLED = "SwapEnabled"
    TOKEN_POOL_ADDRESS_CHANGED = "TokenPoolAddressChanged"
    ROYALTY_FEE_PERCENTAGE_CHANGED = "RoyaltyFeePercentageChanged"
    TOKEN_RATIO_CHANGED = "TokenRatioChanged"
    # Lock
    LOCKED = "Locked"
    UNLOCKED = "Unlocked"
    CLAIMED = "Claimed"
    CLAIMING_ENABLED = "ClaimingEnabled"
    # Shared
    NATIVE_TOKENS_WITHDRAWN = "NativeTokensWithdrawn"
    TOKENS_WITHDRAWN = "TokensWithdrawn"
    ROLE_GRANTED = "RoleGranted"
    ROLE_REVOKED = "RoleRevoked"
    # Observability only, never carries state
    OPERATION_REJECTED = "OperationRejected"


class EventSeverity(str, Enum):
    """Severity levels associated with events."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass(slots=True)
class Event:
    """Normalized representation of a ledger event."""

    type: EventType
    payload: Dict[str, Any] = field(default_factory=dict)
    source: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    severity: EventSeverity = EventSeverity.INFO
    correlation_id: Optional[str] = None


Subscriber = Callable[[Event], Union[None, Any]]


class EventBus:
    """Threaded event bus that fans out committed events to subscribers."""

    def __init__(self, history_size: int = 1_000) -> None:
        self._queue: "queue.Queue[Event]" = queue.Queue()
        self._subscribers: Dict[Optional[EventType], List[Subscriber]] = defaultdict(list)
        self._history: Deque[Event] = deque(maxlen=history_size)
        self._lock = threading.RLock()
        self._logger = logging.getLogger(__name__)
        self._metrics: Optional[MetricsRegistry] = None
        self._alerts: Optional[AlertManager] = None
        self._storage: Optional["StorageAdapter"] = None
        self._worker = threading.Thread(target=self._run, name="event-bus", daemon=True)
        self._worker.start()

    def attach_metrics(self, registry: Optional[MetricsRegistry]) -> None:
        self._metrics = registry

    def attach_alert_manager(self, manager: Optional[AlertManager]) -> None:
        self._alerts = manager

    def attach_storage(self, storage: Optional["StorageAdapter"]) -> None:
        self._storage = storage

    def subscribe(self, event_type: Optional[EventType], handler: Subscriber) -> None:
        """Register a subscriber for a specific event type or all events."""

        with self._lock:
            self._subscribers[event_type].append(handler)

    def publish(
        self,
        event_type: Union[EventType, str],
        payload: Optional[Dict[str, Any]] = None,
        *,
        source: Optional[str] = None,
        severity: EventSeverity = EventSeverity.INFO,
        correlation_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> Event:
        """Publish a new event onto the bus."""

        if isinstance(event_type, str) and not isinstance(event_type, EventType):
            try:
                event_type = EventType(event_type)
            except ValueError as exc:
                raise ValueError(f"Unsupported event type: {event_type}") from exc
        event = Event(
            type=event_type,
            payload=dict(payload or {}),
            source=source,
            severity=severity,
            correlation_id=correlation_id,
        )
        if timestamp is not None:
            event.timestamp = timestamp
        self._queue.put(event)
        return event

    @property
    def history_size(self) -> int:
        return self._history.maxlen or 0

    def resize_history(self, history_size: int) -> None:
        """Change how many dispatched events are retained, keeping the newest."""

        with self._lock:
            self._history = deque(self._history, maxlen=history_size)

    def history(self, limit: int = 100) -> List[Event]:
        with self._lock:
            return list(self._history)[-limit:]

    def events(self, event_type: Union[EventType, str], *, source: Optional[str] = None) -> List[Event]:
        """Dispatched events of one type, oldest first, optionally for a single source."""

        wanted = EventType(event_type)
        with self._lock:
            return [
                event
                for event in self._history
                if event.type == wanted and (source is None or event.source == source)
            ]

    def flush(self, timeout: float = 1.0) -> bool:
        """Best-effort wait for the queue to drain."""

        deadline = time.time() + timeout
        while time.time() < deadline:
            if self._queue.unfinished_tasks == 0:
                return True
            time.sleep(0.01)
        return self._queue.unfinished_tasks == 0

    def _run(self) -> None:
        while True:
            event = self._queue.get()
            try:
                self._dispatch(event)
            except Exception:
                self._logger.exception("Failed to dispatch event %s", event.type.value)
            finally:
                self._queue.task_done()

    def _dispatch(self, event: Event) -> None:
        with self._lock:
            self._history.append(event)
            handlers = list(self._subscribers.get(event.type, [])) + list(
                self._subscribers.get(None, [])
            )
        self._update_metrics(event)
        self._persist_event(event)
        self._trigger_alerts(event)
        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    asyncio.run(result)
            except Exception:  # pragma: no cover - subscriber failures should never break dispatch
                self._logger.exception(
                    "Event handler %s failed for %s", getattr(handler, "__name__", handler), event.type.value
                )

    def _update_metrics(self, event: Event) -> None:
        if not self._metrics:
            return
        self._metrics.increment(f"events.{event.type.value}", 1.0)
        if event.type == EventType.SWAPPED:
            self._metrics.observe("swap.token_one_amount", float(event.payload.get("token_one_amount", 0)))
            self._metrics.add_amount("swap.royalty_fee_total", event.payload.get("royalty_fee_amount", 0))
            token_two = event.payload.get("token_two_address")
            self._metrics.add_amount(f"swap.{token_two}.volume", event.payload.get("token_two_amount", 0))
        if event.type == EventType.OPERATION_REJECTED:
            reason = event.payload.get("error")
            if isinstance(reason, str):
                self._metrics.increment(f"rejections.{reason}", 1.0)

    def _persist_event(self, event: Event) -> None:
        if not self._storage:
            return
        record = EventLogRecord(
            timestamp=event.timestamp,
            event_type=event.type.value,
            severity=event.severity.value,
            payload=event.payload,
            source=event.source,
            correlation_id=event.correlation_id,
        )
        try:
            self._storage.record_event_log(record)
        except Exception:  # pragma: no cover - persistence failures should be non-fatal
            self._logger.exception("Failed to persist event log for %s", event.type.value)

    def _trigger_alerts(self, event: Event) -> None:
        if not self._alerts:
            return
        if event.severity in {EventSeverity.WARNING, EventSeverity.ERROR, EventSeverity.CRITICAL}:
            self._alerts.notify_event(
                event.type.value,
                event.payload,
                severity=AlertSeverity(event.severity.value),
                source=event.source,
            )


EVENT_BUS = EventBus()


__all__ = [
    "EVENT_BUS",
    "EventBus",
    "Event",
    "EventType",
    "EventSeverity",
]
