# Overview: Audit trail write path; in-transaction entries and the observational dispatcher.

"""
Audit Service

Two write paths, chosen by how critical the event is:

1. write_audit(): workflow actions (create/fulfill/mark/cancel/pay/credit/refund,
   inventory adjustments, cash sessions). The entry is added to the caller's
   session and commits or rolls back with the mutation it describes.

2. log_observational(): views and other purely observational events. The
   entry is queued on a bounded queue and written by a background worker with
   its own retry/backoff. A full queue or exhausted retries drops the event,
   logs it and increments a counter; the caller never sees the failure.
   Durability is traded for availability here: observational rows may be lost
   when audit storage is degraded.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from flask import Flask, current_app

from ..extensions import db
from ..models import AuditLogEntry
from storeflow.time_utils import utcnow

logger = logging.getLogger(__name__)

EXTENSION_KEY = "storeflow_audit"


def write_audit(
    *,
    location_id: int,
    actor_id: int,
    action: str,
    entity_type: str,
    entity_id: int,
    description: str,
    meta: dict | None = None,
) -> AuditLogEntry:
    """
    Append an audit entry inside the caller's unit of work.

    No commit here; the entry lives or dies with the surrounding transaction.
    """
    if location_id is None:
        raise ValueError("audit entries require a location_id")

    entry = AuditLogEntry(
        location_id=location_id,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        description=description,
        meta=meta,
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


@dataclass
class AuditEvent:
    location_id: int
    actor_id: int
    action: str
    entity_type: str
    entity_id: int
    description: str
    meta: dict | None = None
    occurred_at: Any = field(default_factory=utcnow)


class AuditDispatcher:
    """
    Bounded queue drained by one background worker.

    Contract:
        - submit() never blocks and never raises.
        - Each event is delivered to sink() with up to `attempts` tries and
          exponential backoff.
        - Undeliverable events go to the failure channel: a log line, the
          `dropped`/`failed` counters and the optional on_failure callback.
    """

    def __init__(
        self,
        sink: Callable[[AuditEvent], None],
        *,
        maxsize: int = 1000,
        attempts: int = 3,
        backoff_base: float = 0.2,
        on_failure: Callable[[AuditEvent, Exception | None], None] | None = None,
    ):
        self._sink = sink
        self._queue: queue.Queue[AuditEvent | None] = queue.Queue(maxsize=maxsize)
        self._attempts = max(1, attempts)
        self._backoff_base = backoff_base
        self._on_failure = on_failure
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self.delivered = 0
        self.dropped = 0
        self.failed = 0

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run_loop, name="audit-dispatcher", daemon=True)
        self._thread.start()
        logger.info("audit dispatcher started")

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None or not self._thread.is_alive():
            return
        try:
            self._queue.put(None, timeout=timeout)
        except queue.Full:
            logger.warning("audit dispatcher queue full at shutdown; worker left to drain")
            return
        self._thread.join(timeout=timeout)
        logger.info("audit dispatcher stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def submit(self, event: AuditEvent) -> bool:
        """Queue an event; returns False when it had to be dropped."""
        try:
            self._queue.put_nowait(event)
            return True
        except queue.Full:
            with self._lock:
                self.dropped += 1
            logger.warning("audit queue full; dropping %s on %s %s",
                           event.action, event.entity_type, event.entity_id)
            self._notify_failure(event, None)
            return False

    def join(self) -> None:
        """Block until every queued event has been processed (delivered or failed)."""
        self._queue.join()

    def deliver(self, event: AuditEvent, backoff: bool = True) -> bool:
        """
        Deliver one event, retrying up to the configured attempts.

        The worker loop sleeps between attempts. With backoff=False the
        attempts run back to back.
        """
        last_exc: Exception | None = None
        for attempt in range(self._attempts):
            try:
                self._sink(event)
                with self._lock:
                    self.delivered += 1
                return True
            except Exception as exc:
                last_exc = exc
                if backoff and attempt < self._attempts - 1:
                    time.sleep(self._backoff_base * (2 ** attempt))

        with self._lock:
            self.failed += 1
        logger.error("audit delivery failed after %d attempts: %s on %s %s (%s)",
                     self._attempts, event.action, event.entity_type, event.entity_id, last_exc)
        self._notify_failure(event, last_exc)
        return False

    def _run_loop(self) -> None:
        while True:
            event = self._queue.get()
            try:
                if event is None:
                    return
                self.deliver(event)
            finally:
                self._queue.task_done()

    def _notify_failure(self, event: AuditEvent, exc: Exception | None) -> None:
        if self._on_failure is None:
            return
        try:
            self._on_failure(event, exc)
        except Exception:
            logger.exception("audit failure callback raised")


def _database_sink(app: Flask) -> Callable[[AuditEvent], None]:
    def _write(event: AuditEvent) -> None:
        with app.app_context():
            try:
                db.session.add(AuditLogEntry(
                    location_id=event.location_id,
                    actor_id=event.actor_id,
                    action=event.action,
                    entity_type=event.entity_type,
                    entity_id=event.entity_id,
                    description=event.description,
                    meta=event.meta,
                    created_at=event.occurred_at,
                ))
                db.session.commit()
            except Exception:
                db.session.rollback()
                raise
    return _write


def init_audit(app: Flask) -> AuditDispatcher:
    """Create the app's dispatcher; the worker only runs when AUDIT_ASYNC_ENABLED."""
    dispatcher = AuditDispatcher(
        _database_sink(app),
        maxsize=app.config.get("AUDIT_QUEUE_MAXSIZE", 1000),
        attempts=app.config.get("AUDIT_RETRY_ATTEMPTS", 3),
        backoff_base=app.config.get("AUDIT_RETRY_BACKOFF", 0.2),
    )
    app.extensions[EXTENSION_KEY] = dispatcher
    if app.config.get("AUDIT_ASYNC_ENABLED", True):
        dispatcher.start()
    return dispatcher


def log_observational(
    *,
    location_id: int,
    actor_id: int,
    action: str,
    entity_type: str,
    entity_id: int,
    description: str,
    meta: dict | None = None,
) -> None:
    """
    Record an observational event without ever failing the caller.

    With the worker running the event is queued; otherwise it is delivered
    inline, still swallowing and logging any failure.
    """
    event = AuditEvent(
        location_id=location_id,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        description=description,
        meta=meta,
    )
    dispatcher: AuditDispatcher | None = current_app.extensions.get(EXTENSION_KEY)
    if dispatcher is None:
        logger.warning("audit dispatcher not initialised; dropping %s", action)
        return
    if dispatcher.is_running:
        dispatcher.submit(event)
    else:
        dispatcher.deliver(event, backoff=False)
