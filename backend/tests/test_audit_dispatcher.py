"""
Observational audit path: bounded queue, retry/backoff, and a failure channel
that never reaches the caller.
"""

import pytest

from storeflow.models import AuditLogEntry
from storeflow.services import audit_service
from storeflow.services.audit_service import AuditDispatcher, AuditEvent, log_observational


def _event(action="SALE_VIEW"):
    return AuditEvent(location_id=1, actor_id=7, action=action, entity_type="sale", entity_id=3,
                      description="viewed")


class FlakySink:
    def __init__(self, failures=0):
        self.failures = failures
        self.calls = 0
        self.delivered = []

    def __call__(self, event):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError("audit storage down")
        self.delivered.append(event)


def test_delivery_retries_then_succeeds():
    sink = FlakySink(failures=2)
    dispatcher = AuditDispatcher(sink, attempts=3, backoff_base=0)

    assert dispatcher.deliver(_event()) is True
    assert sink.calls == 3
    assert dispatcher.delivered == 1
    assert dispatcher.failed == 0


def test_exhausted_retries_go_to_failure_channel():
    failures = []
    sink = FlakySink(failures=10)
    dispatcher = AuditDispatcher(sink, attempts=2, backoff_base=0,
                                 on_failure=lambda event, exc: failures.append((event.action, str(exc))))

    assert dispatcher.deliver(_event()) is False
    assert sink.calls == 2
    assert dispatcher.failed == 1
    assert failures == [("SALE_VIEW", "audit storage down")]


def test_full_queue_drops_without_raising():
    failures = []
    dispatcher = AuditDispatcher(FlakySink(), maxsize=1,
                                 on_failure=lambda event, exc: failures.append(exc))

    assert dispatcher.submit(_event("A")) is True
    assert dispatcher.submit(_event("B")) is False
    assert dispatcher.dropped == 1
    assert failures == [None]


def test_failure_callback_errors_are_contained():
    def _boom(event, exc):
        raise RuntimeError("callback broken")

    dispatcher = AuditDispatcher(FlakySink(failures=5), attempts=1, backoff_base=0, on_failure=_boom)
    assert dispatcher.deliver(_event()) is False


def test_worker_drains_queue():
    sink = FlakySink(failures=1)
    dispatcher = AuditDispatcher(sink, attempts=2, backoff_base=0)
    dispatcher.start()
    try:
        for i in range(5):
            dispatcher.submit(_event(f"VIEW_{i}"))
        dispatcher.join()
    finally:
        dispatcher.stop()

    assert [e.action for e in sink.delivered] == [f"VIEW_{i}" for i in range(5)]
    assert dispatcher.delivered == 5
    assert not dispatcher.is_running


def test_log_observational_writes_inline_when_worker_disabled(app, db_session, location):
    log_observational(location_id=location.id, actor_id=7, action="SALE_VIEW", entity_type="sale",
                      entity_id=99, description="Viewed sale #99")

    row = db_session.query(AuditLogEntry).filter_by(action="SALE_VIEW").one()
    assert row.entity_id == 99
    assert row.actor_id == 7


def test_log_observational_never_fails_caller(app, db_session, monkeypatch):
    broken = AuditDispatcher(FlakySink(failures=99), attempts=2, backoff_base=0)
    monkeypatch.setitem(app.extensions, audit_service.EXTENSION_KEY, broken)

    log_observational(location_id=1, actor_id=7, action="SALE_VIEW", entity_type="sale",
                      entity_id=1, description="viewed")

    assert broken.failed == 1


def test_inline_delivery_retries_without_sleeping(app, monkeypatch):
    sleeps = []
    monkeypatch.setattr(audit_service.time, "sleep", sleeps.append)
    sink = FlakySink(failures=2)
    slow = AuditDispatcher(sink, attempts=3, backoff_base=5.0)
    monkeypatch.setitem(app.extensions, audit_service.EXTENSION_KEY, slow)

    log_observational(location_id=1, actor_id=7, action="SALE_VIEW", entity_type="sale",
                      entity_id=1, description="viewed")

    assert sleeps == []
    assert sink.calls == 3
    assert slow.delivered == 1


def test_worker_delivery_backs_off_between_attempts(monkeypatch):
    sleeps = []
    monkeypatch.setattr(audit_service.time, "sleep", sleeps.append)
    dispatcher = AuditDispatcher(FlakySink(failures=2), attempts=3, backoff_base=0.5)

    assert dispatcher.deliver(_event()) is True
    assert sleeps == [0.5, 1.0]


def test_stop_without_start_is_noop():
    dispatcher = AuditDispatcher(FlakySink())
    dispatcher.stop()
    assert not dispatcher.is_running
