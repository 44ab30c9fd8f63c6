"""
Unit tests for the progress channel and the client subscriber.
"""

import threading

import pytest

from exceptions import ImportSessionNotFoundError, ProgressTransportError
from models.import_session import ImportSession
from services.progress_channel_service import (
    ProgressChannel,
    ProgressSubscriber,
    SubscriberState,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def channel(clock):
    return ProgressChannel(poll_interval=0.01, purge_after=30, clock=clock)


def _snapshot(processed, total=10, session_id="sess-1"):
    return ImportSession(session_id=session_id, total=total, processed=processed, successful=processed)


# ===================
# CHANNEL
# ===================

class TestProgressChannel:
    """Tests for the server-side snapshot store."""

    def test_publish_requires_open_session(self, channel):
        with pytest.raises(ImportSessionNotFoundError):
            channel.publish(_snapshot(1))

    def test_regression_is_rejected(self, channel):
        channel.open("sess-1", 10)
        assert channel.publish(_snapshot(5))

        assert channel.publish(_snapshot(3)) is False
        assert channel.latest("sess-1").processed == 5

    def test_readers_get_deep_copies(self, channel):
        session = channel.open("sess-1", 10)
        channel.publish(session)

        copy = channel.latest("sess-1")
        copy.errors.append(None)
        session.processed = 4

        assert channel.latest("sess-1").errors == []
        assert channel.latest("sess-1").processed == 0

    def test_finished_session_is_purged_after_grace(self, channel, clock):
        channel.open("sess-1", 1)
        channel.publish(_snapshot(1, total=1))

        clock.now += 29
        assert channel.latest("sess-1") is not None
        clock.now += 1
        assert channel.latest("sess-1") is None

    def test_unfinished_session_is_kept(self, channel, clock):
        channel.open("sess-1", 10)
        clock.now += 10_000
        assert channel.latest("sess-1") is not None

    def test_close(self, channel):
        channel.open("sess-1", 10)
        channel.close("sess-1")
        assert channel.latest("sess-1") is None


class TestSubscribe:
    """Tests for the snapshot stream."""

    def test_late_subscriber_gets_current_snapshot_first(self, channel):
        channel.open("sess-1", 10)
        channel.publish(_snapshot(7))

        stream = channel.subscribe("sess-1")

        assert next(stream).processed == 7

    def test_stream_ends_after_complete_snapshot(self, channel):
        channel.open("sess-1", 2)
        channel.publish(_snapshot(2, total=2))

        snapshots = list(channel.subscribe("sess-1"))

        assert [s.processed for s in snapshots] == [2]

    def test_live_updates(self):
        channel = ProgressChannel(poll_interval=0.05, purge_after=30)
        channel.open("sess-1", 3)
        received = []
        started = threading.Event()

        def consume():
            for snapshot in channel.subscribe("sess-1", wait_for_open=1):
                received.append(snapshot.processed)
                started.set()

        reader = threading.Thread(target=consume)
        reader.start()
        assert started.wait(1)
        for processed in (1, 2, 3):
            channel.publish(_snapshot(processed, total=3))
        reader.join(timeout=2)

        assert not reader.is_alive()
        assert received[-1] == 3
        assert received == sorted(received)

    def test_unknown_session_times_out(self):
        channel = ProgressChannel(poll_interval=0.01, purge_after=30)

        with pytest.raises(ImportSessionNotFoundError):
            list(channel.subscribe("missing", wait_for_open=0.02))

    def test_closed_session_ends_stream(self, channel):
        channel.open("sess-1", 10)
        stream = channel.subscribe("sess-1")
        next(stream)

        channel.close("sess-1")

        assert list(stream) == []


# ===================
# SUBSCRIBER
# ===================

def _payload(processed, total=10):
    return _snapshot(processed, total).model_dump(mode="json")


class ScriptedStream:
    """connect() that plays one script per connection attempt."""

    def __init__(self, scripts):
        self.scripts = list(scripts)
        self.connections = 0

    def __call__(self, session_id):
        self.connections += 1
        script = self.scripts.pop(0) if self.scripts else []
        for item in script:
            if isinstance(item, Exception):
                raise item
            yield item


class TestProgressSubscriber:
    """Tests for the client-side subscriber."""

    def test_completion_with_simultaneous_error_never_reconnects(self):
        stream = ScriptedStream([
            [_payload(5), _payload(10), ProgressTransportError("sess-1")],
        ])
        subscriber = ProgressSubscriber("sess-1", stream, max_reconnects=3)

        final = subscriber.run()

        assert final.processed == 10
        assert subscriber.completed
        assert subscriber.state == SubscriberState.CLOSED
        assert subscriber.reconnects == 0
        assert stream.connections == 1

    def test_reconnects_then_completes(self):
        stream = ScriptedStream([
            [_payload(3), ProgressTransportError("sess-1")],
            [_payload(10)],
        ])
        subscriber = ProgressSubscriber("sess-1", stream, max_reconnects=3)

        assert subscriber.run().processed == 10
        assert subscriber.reconnects == 1

    def test_reconnects_are_bounded(self):
        stream = ScriptedStream([[ProgressTransportError("sess-1")]] * 5)
        subscriber = ProgressSubscriber("sess-1", stream, max_reconnects=2)

        with pytest.raises(ProgressTransportError):
            subscriber.run()

        assert stream.connections == 3
        assert subscriber.state == SubscriberState.CLOSED

    def test_stale_events_are_ignored(self):
        seen = []
        stream = ScriptedStream([[_payload(4), _payload(2), _payload(10)]])
        subscriber = ProgressSubscriber("sess-1", stream, max_reconnects=0, on_progress=seen.append)

        subscriber.run()

        assert [s.processed for s in seen] == [4, 10]

    def test_close_clears_state(self):
        stream = ScriptedStream([[_payload(10)]])
        subscriber = ProgressSubscriber("sess-1", stream, max_reconnects=0)
        subscriber.run()

        subscriber.close()

        assert subscriber.state == SubscriberState.CLOSED
        assert subscriber.latest is None
        assert subscriber.completed is False
        assert subscriber.reconnects == 0
