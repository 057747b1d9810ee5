"""Serialised, failure-atomic execution of ledger operations.

All components of one deployment share a single ``TransactionManager``. Each
public operation runs inside ``atomic()``: a process-wide re-entrant lock makes
operations serialisable, and a journal of undo callbacks restores every
balance, counter and flag touched by an operation that raises. Contract events
are buffered on the transaction and only reach the event bus after commit.
"""

from __future__ import annotations

import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, MutableMapping, Optional

from ..monitoring.event_bus import EVENT_BUS, EventBus, EventSeverity, EventType
from ..monitoring.logger import correlation_scope, get_logger
from ..monitoring.metrics import METRICS, MetricsRegistry
from ..utils.constants import utc_now
from .errors import LedgerError

_MISSING = object()


@dataclass(slots=True)
class PendingEvent:
    type: EventType
    payload: Dict[str, Any]
    source: Optional[str]


class Transaction:
    """Undo journal and event buffer for one top-level operation."""

    def __init__(self, operation: str, *, source: Optional[str], timestamp: datetime) -> None:
        self.operation = operation
        self.source = source
        self.timestamp = timestamp
        self.correlation_id = uuid.uuid4().hex
        self._undo: List[Callable[[], None]] = []
        self._commit_hooks: List[Callable[[], None]] = []
        self._events: List[PendingEvent] = []

    @property
    def pending_events(self) -> List[PendingEvent]:
        return list(self._events)

    @property
    def commit_hooks(self) -> List[Callable[[], None]]:
        return list(self._commit_hooks)

    def on_rollback(self, undo: Callable[[], None]) -> None:
        self._undo.append(undo)

    def on_commit(self, hook: Callable[[], None]) -> None:
        """Run ``hook`` once the outermost transaction has committed."""

        self._commit_hooks.append(hook)

    def assign(self, target: object, attribute: str, value: Any) -> None:
        """Set ``target.attribute`` and journal the previous value."""

        previous = getattr(target, attribute)
        self._undo.append(lambda: setattr(target, attribute, previous))
        setattr(target, attribute, value)

    def assign_item(self, mapping: MutableMapping[Any, Any], key: Any, value: Any) -> None:
        """Set ``mapping[key]`` and journal the previous entry (or its absence)."""

        previous = mapping.get(key, _MISSING)

        def _restore() -> None:
            if previous is _MISSING:
                mapping.pop(key, None)
            else:
                mapping[key] = previous

        self._undo.append(_restore)
        mapping[key] = value

    def emit(self, event_type: EventType, payload: Dict[str, Any], *, source: Optional[str] = None) -> None:
        self._events.append(PendingEvent(event_type, dict(payload), source or self.source))

    def rollback(self) -> None:
        while self._undo:
            self._undo.pop()()
        self._events.clear()
        self._commit_hooks.clear()


class TransactionManager:
    """Runs operations one at a time and commits or rolls them back as a whole."""

    def __init__(
        self,
        *,
        event_bus: Optional[EventBus] = None,
        metrics: Optional[MetricsRegistry] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._lock = threading.RLock()
        self._active: Optional[Transaction] = None
        self._event_bus = event_bus or EVENT_BUS
        self._metrics = metrics or METRICS
        self._clock = clock
        self._logger = get_logger(__name__)

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def metrics(self) -> MetricsRegistry:
        return self._metrics

    def current(self) -> Optional[Transaction]:
        return self._active

    @contextmanager
    def atomic(self, operation: str, *, source: Optional[str] = None) -> Iterator[Transaction]:
        """Open a transaction, or join the one already running on this thread."""

        with self._lock:
            outer = self._active
            if outer is not None:
                yield outer
                return
            tx = Transaction(operation, source=source, timestamp=self._clock())
            self._active = tx
            try:
                with correlation_scope(tx.correlation_id, operation):
                    try:
                        yield tx
                    except BaseException as exc:
                        tx.rollback()
                        if isinstance(exc, LedgerError):
                            self._record_rejection(tx, exc)
                        else:
                            self._logger.exception("Operation %s failed unexpectedly", operation)
                        raise
                    self._commit(tx)
            finally:
                self._active = None

    def _commit(self, tx: Transaction) -> None:
        for pending in tx.pending_events:
            self._event_bus.publish(
                pending.type,
                pending.payload,
                source=pending.source,
                correlation_id=tx.correlation_id,
                timestamp=tx.timestamp,
            )
        self._metrics.record_operation(tx.operation, "committed")
        for hook in tx.commit_hooks:
            hook()

    def _record_rejection(self, tx: Transaction, exc: LedgerError) -> None:
        self._metrics.record_operation(tx.operation, "rejected")
        self._logger.warning(
            "Operation %s rejected: %s",
            tx.operation,
            exc.message,
            extra={"error": exc.code, "source": tx.source},
        )
        self._event_bus.publish(
            EventType.OPERATION_REJECTED,
            {"operation": tx.operation, "error": exc.code, "message": exc.message},
            source=tx.source,
            severity=EventSeverity.WARNING,
            correlation_id=tx.correlation_id,
            timestamp=tx.timestamp,
        )


__all__ = ["PendingEvent", "Transaction", "TransactionManager"]
