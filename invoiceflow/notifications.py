"""
invoiceflow/notifications.py

Outbound notification channel for invoice workflow events.

Delivery contract:
- dispatch() never blocks the caller and never raises.
- Events go through a bounded in-process queue drained by one daemon worker per app.
- Each registered sink is attempted exactly once per event (at most once, best effort).
  A failing sink is logged with its traceback and the event is NOT retried.
- A full queue drops the event and logs a warning. Gaps are visible in logs only,
  never in workflow state.

IMPORTANT:
- Callers dispatch only AFTER their transaction committed. The dispatcher knows nothing
  about the database and cannot roll anything back.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from flask import Flask, current_app

logger = logging.getLogger(__name__)

EXTENSION_KEY = "invoiceflow.notifications"

_STOP = object()


class EventType(str, Enum):
    INVOICE_CREATED = "invoice_created"
    STATUS_CHANGED = "status_changed"
    INVOICE_ASSIGNED = "invoice_assigned"


@dataclass(frozen=True)
class NotificationEvent:
    event_type: EventType
    invoice_id: int
    to_state: str
    actor_id: Optional[int]
    timestamp: datetime
    from_state: Optional[str] = None
    note: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type.value
        data["timestamp"] = self.timestamp.isoformat()
        return data


Sink = Callable[[NotificationEvent], None]


def logging_sink(event: NotificationEvent) -> None:
    """Default sink: write the event to the application log."""
    logger.info(
        "notification %s invoice=%s %s -> %s actor=%s",
        event.event_type.value,
        event.invoice_id,
        event.from_state,
        event.to_state,
        event.actor_id,
    )


@dataclass
class _DispatcherState:
    """Per-app dispatcher state (queue, worker, sinks)."""

    enabled: bool
    queue: "queue.Queue[Any]"
    sinks: List[Sink] = field(default_factory=list)
    worker: Optional[threading.Thread] = None
    lock: threading.Lock = field(default_factory=threading.Lock)
    delivered: int = 0
    dropped: int = 0
    failed: int = 0


class NotificationDispatcher:
    """
    Flask extension delivering NotificationEvent objects to sinks in the background.

    Usage:
        notifier.init_app(app)
        notifier.add_sink(my_sink)                 # inside an app context
        notifier.dispatch(NotificationEvent(...))  # after commit
    """

    def __init__(self, app: Optional[Flask] = None) -> None:
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        app.config.setdefault("NOTIFICATIONS_ENABLED", True)
        app.config.setdefault("NOTIFICATION_QUEUE_SIZE", 100)

        state = _DispatcherState(
            enabled=bool(app.config["NOTIFICATIONS_ENABLED"]),
            queue=queue.Queue(maxsize=int(app.config["NOTIFICATION_QUEUE_SIZE"])),
        )
        state.sinks.append(logging_sink)
        app.extensions[EXTENSION_KEY] = state

    # ------------------------------------------------------------------
    # Sink registry
    # ------------------------------------------------------------------
    def _state(self, app: Optional[Flask] = None) -> _DispatcherState:
        app = app or current_app._get_current_object()
        return app.extensions[EXTENSION_KEY]

    def add_sink(self, sink: Sink, app: Optional[Flask] = None) -> None:
        state = self._state(app)
        with state.lock:
            state.sinks.append(sink)

    def remove_sink(self, sink: Sink, app: Optional[Flask] = None) -> None:
        state = self._state(app)
        with state.lock:
            if sink in state.sinks:
                state.sinks.remove(sink)

    def stats(self, app: Optional[Flask] = None) -> Dict[str, int]:
        state = self._state(app)
        with state.lock:
            return {"delivered": state.delivered, "dropped": state.dropped, "failed": state.failed}

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    def dispatch(self, event: NotificationEvent, app: Optional[Flask] = None) -> bool:
        """
        Enqueue an event for background delivery.

        Returns True when the event was accepted, False when it was dropped.
        """
        state = self._state(app)
        if not state.enabled:
            return False

        self._ensure_worker(state)
        try:
            state.queue.put_nowait(event)
        except queue.Full:
            with state.lock:
                state.dropped += 1
            logger.warning(
                "Notification queue full; dropped %s for invoice %s",
                event.event_type.value,
                event.invoice_id,
            )
            return False
        return True

    def flush(self, app: Optional[Flask] = None) -> None:
        """Block until every queued event has been handed to the sinks."""
        state = self._state(app)
        if state.worker is None:
            return
        state.queue.join()

    def shutdown(self, app: Optional[Flask] = None) -> None:
        """Stop the worker after draining the queue."""
        state = self._state(app)
        with state.lock:
            worker = state.worker
            state.worker = None
        if worker is None:
            return
        state.queue.put(_STOP)
        worker.join()

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------
    def _ensure_worker(self, state: _DispatcherState) -> None:
        with state.lock:
            if state.worker is not None and state.worker.is_alive():
                return
            state.worker = threading.Thread(
                target=self._run,
                args=(state,),
                name="invoiceflow-notifications",
                daemon=True,
            )
            state.worker.start()

    def _run(self, state: _DispatcherState) -> None:
        while True:
            item = state.queue.get()
            try:
                if item is _STOP:
                    return
                self._deliver(state, item)
            finally:
                state.queue.task_done()

    def _deliver(self, state: _DispatcherState, event: NotificationEvent) -> None:
        with state.lock:
            sinks = list(state.sinks)

        for sink in sinks:
            try:
                sink(event)
            except Exception:
                # Non-fatal by contract: log and move on, no retry.
                with state.lock:
                    state.failed += 1
                logger.exception(
                    "Notification sink %r failed for %s on invoice %s",
                    sink,
                    event.event_type.value,
                    event.invoice_id,
                )
            else:
                with state.lock:
                    state.delivered += 1
