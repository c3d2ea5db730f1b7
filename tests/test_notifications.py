import threading
from datetime import datetime

from flask import Flask

from invoiceflow.notifications import EventType, NotificationDispatcher, NotificationEvent


def make_app(**config):
    app = Flask(__name__)
    app.config.update(config)
    return app


def event(invoice_id=1, to_state="assigned"):
    return NotificationEvent(
        event_type=EventType.STATUS_CHANGED,
        invoice_id=invoice_id,
        from_state="submitted",
        to_state=to_state,
        actor_id=7,
        timestamp=datetime(2024, 5, 1, 12, 0, 0),
    )


def test_payload_shape():
    assert event().as_dict() == {
        "event_type": "status_changed",
        "invoice_id": 1,
        "from_state": "submitted",
        "to_state": "assigned",
        "actor_id": 7,
        "timestamp": "2024-05-01T12:00:00",
        "note": None,
    }


def test_events_reach_every_sink_once():
    app = make_app()
    dispatcher = NotificationDispatcher(app)
    first, second = [], []
    dispatcher.add_sink(first.append, app=app)
    dispatcher.add_sink(second.append, app=app)

    assert dispatcher.dispatch(event(1), app=app)
    assert dispatcher.dispatch(event(2), app=app)
    dispatcher.flush(app=app)
    dispatcher.shutdown(app=app)

    assert [e.invoice_id for e in first] == [1, 2]
    assert [e.invoice_id for e in second] == [1, 2]


def test_sink_failure_is_logged_and_not_retried(caplog):
    app = make_app()
    dispatcher = NotificationDispatcher(app)
    calls = []

    def flaky(evt):
        calls.append(evt)
        raise ConnectionError("mail relay unreachable")

    delivered = []
    dispatcher.add_sink(flaky, app=app)
    dispatcher.add_sink(delivered.append, app=app)

    with caplog.at_level("ERROR", logger="invoiceflow.notifications"):
        dispatcher.dispatch(event(), app=app)
        dispatcher.flush(app=app)

    assert len(calls) == 1
    assert len(delivered) == 1
    assert dispatcher.stats(app=app)["failed"] == 1
    assert "mail relay unreachable" in caplog.text
    dispatcher.shutdown(app=app)


def test_full_queue_drops_without_blocking(caplog):
    app = make_app(NOTIFICATION_QUEUE_SIZE=1)
    dispatcher = NotificationDispatcher(app)
    entered, release = threading.Event(), threading.Event()
    received = []

    def slow(evt):
        received.append(evt.invoice_id)
        entered.set()
        release.wait(timeout=10)

    dispatcher.add_sink(slow, app=app)

    assert dispatcher.dispatch(event(1), app=app)
    assert entered.wait(timeout=10)
    assert dispatcher.dispatch(event(2), app=app)  # fills the single slot

    with caplog.at_level("WARNING", logger="invoiceflow.notifications"):
        assert dispatcher.dispatch(event(3), app=app) is False

    release.set()
    dispatcher.flush(app=app)
    dispatcher.shutdown(app=app)

    assert received == [1, 2]
    assert dispatcher.stats(app=app)["dropped"] == 1
    assert "queue full" in caplog.text


def test_disabled_dispatcher_accepts_nothing():
    app = make_app(NOTIFICATIONS_ENABLED=False)
    dispatcher = NotificationDispatcher(app)
    received = []
    dispatcher.add_sink(received.append, app=app)

    assert dispatcher.dispatch(event(), app=app) is False
    dispatcher.flush(app=app)
    assert received == []


def test_apps_do_not_share_state():
    first_app, second_app = make_app(), make_app()
    dispatcher = NotificationDispatcher()
    dispatcher.init_app(first_app)
    dispatcher.init_app(second_app)
    received = []
    dispatcher.add_sink(received.append, app=first_app)

    dispatcher.dispatch(event(), app=second_app)
    dispatcher.flush(app=second_app)
    dispatcher.shutdown(app=second_app)

    assert received == []


def test_counters_add_up_under_concurrent_dispatch():
    app = make_app(NOTIFICATION_QUEUE_SIZE=4)
    dispatcher = NotificationDispatcher(app)
    received = []
    dispatcher.add_sink(received.append, app=app)

    accepted = []
    start = threading.Barrier(8)

    def publisher(base):
        start.wait(timeout=10)
        ok = sum(dispatcher.dispatch(event(base + i), app=app) for i in range(50))
        accepted.append(ok)

    threads = [threading.Thread(target=publisher, args=(n * 100,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    dispatcher.flush(app=app)
    dispatcher.shutdown(app=app)

    stats = dispatcher.stats(app=app)
    assert sum(accepted) + stats["dropped"] == 8 * 50
    assert len(received) == sum(accepted)
    # the default logging sink sees every accepted event too
    assert stats["delivered"] == 2 * sum(accepted)
    assert stats["failed"] == 0
