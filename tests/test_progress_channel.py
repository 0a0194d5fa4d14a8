import json

import pytest

from geoqueue.services.progress_channel import (
    CONNECTED,
    HEARTBEAT,
    ProgressChannel,
    Subscriber,
    SubscriberGone,
    format_event,
    get_progress_channel,
)
from tests.conftest import bearer


def test_broadcast_reaches_every_subscriber():
    channel = ProgressChannel()
    a, b = channel.subscribe(), channel.subscribe()

    assert channel.broadcast({"type": "progress", "id": 1, "progress": 42.0}) == 2

    for sub in (a, b):
        message = sub.next_message(timeout=0.1)
        assert message.startswith("data: ")
        assert json.loads(message[len("data: "):]) == {"type": "progress", "id": 1, "progress": 42.0}


def test_closed_subscriber_is_dropped_not_retried():
    channel = ProgressChannel()
    alive, gone = channel.subscribe(), channel.subscribe()
    gone.close()

    assert channel.broadcast({"id": 1}) == 1
    assert channel.subscriber_count == 1

    assert channel.broadcast({"id": 2}) == 1
    assert alive.next_message(timeout=0.1) == format_event({"id": 1})


def test_subscriber_that_stops_reading_is_dropped():
    channel = ProgressChannel(backlog=2)
    channel.subscribe()

    assert channel.broadcast({"id": 1}) == 1
    assert channel.broadcast({"id": 2}) == 1
    assert channel.broadcast({"id": 3}) == 0
    assert channel.subscriber_count == 0


def test_deliver_to_closed_subscriber_raises():
    sub = Subscriber()
    sub.close()
    with pytest.raises(SubscriberGone):
        sub.deliver("data: {}\n\n")


def test_stream_sends_heartbeats_and_messages():
    channel = ProgressChannel(heartbeat_seconds=0.01)
    sub = channel.subscribe()
    stream = channel.stream(sub)

    assert next(stream) == CONNECTED
    assert next(stream) == HEARTBEAT

    channel.broadcast({"id": 7, "progress": 100.0})
    assert next(stream) == format_event({"id": 7, "progress": 100.0})

    stream.close()
    assert channel.subscriber_count == 0
    assert sub.closed


def test_events_endpoint_opens_stream(app, client, seed):
    resp = client.get("/api/print-queue/events", headers=bearer(seed.printer_key))

    assert resp.status_code == 200
    assert resp.mimetype == "text/event-stream"
    assert resp.headers["Cache-Control"] == "no-cache, no-transform"
    with app.app_context():
        assert get_progress_channel().subscriber_count == 1
    resp.close()


def test_events_endpoint_requires_print_capability(client, seed):
    assert client.get("/api/print-queue/events", headers=bearer(seed.agent_key)).status_code == 403
