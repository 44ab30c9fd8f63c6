"""
Progress channel for import sessions.

The server side keeps the latest ImportSession snapshot per session id
and wakes readers on every publish. Readers always receive deep copies,
so nothing downstream can mutate the job's state.

The client side (ProgressSubscriber) consumes a snapshot stream with a
bounded number of reconnects and stops for good once the session is
complete.
"""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Iterator, Optional

import structlog

from config import settings
from exceptions import ImportSessionNotFoundError, ProgressTransportError
from models.import_session import ImportSession

logger = structlog.get_logger(__name__)


@dataclass
class _Entry:
    snapshot: ImportSession
    version: int = 0
    finished_at: Optional[float] = None


class ProgressChannel:
    """
    In-process snapshot store keyed by session id.

    Publishing never blocks on subscribers; a Condition wakes any reader
    waiting for the next version.
    """

    def __init__(
        self,
        poll_interval: Optional[float] = None,
        purge_after: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.poll_interval = poll_interval or settings.progress_poll_interval_seconds
        self.purge_after = settings.session_purge_seconds if purge_after is None else purge_after
        self._clock = clock
        self._cond = threading.Condition()
        self._sessions: dict[str, _Entry] = {}

    # ===================
    # WRITERS
    # ===================

    def open(self, session_id: str, total: int) -> ImportSession:
        """Start (or restart) a session with an empty snapshot."""
        snapshot = ImportSession(session_id=session_id, total=total)
        with self._cond:
            self._purge_expired()
            self._sessions[session_id] = _Entry(snapshot=snapshot.model_copy(deep=True))
            self._cond.notify_all()
        logger.debug("progress_session_opened", session_id=session_id, total=total)
        return snapshot

    def publish(self, snapshot: ImportSession) -> bool:
        """
        Replace the stored snapshot.

        Returns False (and keeps the stored one) if `processed` would
        go backwards.

        Raises:
            ImportSessionNotFoundError: If the session was never opened
        """
        with self._cond:
            entry = self._sessions.get(snapshot.session_id)
            if entry is None:
                raise ImportSessionNotFoundError(snapshot.session_id)

            if snapshot.processed < entry.snapshot.processed:
                logger.warning(
                    "progress_regression_rejected",
                    session_id=snapshot.session_id,
                    stored=entry.snapshot.processed,
                    published=snapshot.processed
                )
                return False

            entry.snapshot = snapshot.model_copy(deep=True)
            entry.version += 1
            if snapshot.is_complete and entry.finished_at is None:
                entry.finished_at = self._clock()
            self._cond.notify_all()
        return True

    def finish(self, session_id: str) -> None:
        """Mark a session finished; it is purged after the grace period."""
        with self._cond:
            entry = self._sessions.get(session_id)
            if entry is not None and entry.finished_at is None:
                entry.finished_at = self._clock()
            self._cond.notify_all()

    def close(self, session_id: str) -> None:
        """Discard a session immediately."""
        with self._cond:
            self._sessions.pop(session_id, None)
            self._cond.notify_all()
        logger.debug("progress_session_closed", session_id=session_id)

    def _purge_expired(self) -> None:
        # Caller holds the lock
        now = self._clock()
        expired = [
            sid for sid, entry in self._sessions.items()
            if entry.finished_at is not None and now - entry.finished_at >= self.purge_after
        ]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.debug("progress_sessions_purged", count=len(expired))

    # ===================
    # READERS
    # ===================

    def latest(self, session_id: str) -> Optional[ImportSession]:
        """Deep copy of the current snapshot, or None."""
        with self._cond:
            self._purge_expired()
            entry = self._sessions.get(session_id)
            return entry.snapshot.model_copy(deep=True) if entry else None

    def subscribe(
        self,
        session_id: str,
        wait_for_open: Optional[float] = None,
    ) -> Iterator[ImportSession]:
        """
        Stream snapshots for one session.

        The first item is the current snapshot. After that a snapshot is
        yielded on every publish, and re-sent every poll interval as a
        keep-alive. The stream ends after the complete snapshot, or when
        the session is closed.

        Raises:
            ImportSessionNotFoundError: If the session does not appear
                within `wait_for_open` seconds
        """
        wait_for_open = self.poll_interval if wait_for_open is None else wait_for_open
        deadline = self._clock() + wait_for_open
        seen_version = -1
        seen_any = False

        while True:
            with self._cond:
                self._purge_expired()
                entry = self._sessions.get(session_id)

                if entry is None:
                    if seen_any:
                        return
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        raise ImportSessionNotFoundError(session_id)
                    self._cond.wait(min(remaining, self.poll_interval))
                    continue

                if entry.version == seen_version:
                    self._cond.wait(self.poll_interval)
                    entry = self._sessions.get(session_id)
                    if entry is None:
                        return

                seen_version = entry.version
                seen_any = True
                snapshot = entry.snapshot.model_copy(deep=True)

            yield snapshot
            if snapshot.is_complete:
                return


# ===================
# CLIENT SUBSCRIBER
# ===================

class SubscriberState(str, Enum):
    IDLE = "idle"
    OPEN = "open"
    CLOSED = "closed"


class ProgressSubscriber:
    """
    Client-side consumer of a progress stream.

    `connect(session_id)` returns an iterable of raw event payloads
    (dicts) and may raise ProgressTransportError when the stream drops.
    """

    def __init__(
        self,
        session_id: str,
        connect: Callable[[str], Iterable[dict]],
        max_reconnects: Optional[int] = None,
        on_progress: Optional[Callable[[ImportSession], None]] = None,
    ):
        self.session_id = session_id
        self._connect = connect
        self.max_reconnects = (
            settings.progress_max_reconnects if max_reconnects is None else max_reconnects
        )
        self._on_progress = on_progress
        self.state = SubscriberState.IDLE
        self.completed = False
        self.latest: Optional[ImportSession] = None
        self.reconnects = 0
        self._stop = threading.Event()

    def _handle(self, payload: dict) -> None:
        snapshot = ImportSession.model_validate(payload)
        if self.latest is not None and snapshot.processed < self.latest.processed:
            logger.debug(
                "stale_progress_ignored",
                session_id=self.session_id,
                processed=snapshot.processed
            )
            return

        self.latest = snapshot
        if self._on_progress:
            self._on_progress(snapshot)
        if snapshot.is_complete:
            self.completed = True

    def run(self) -> Optional[ImportSession]:
        """
        Consume the stream until the session completes or the subscriber
        is closed.

        Returns:
            Final snapshot, or None if closed before completion

        Raises:
            ProgressTransportError: If the stream keeps failing past the
                reconnect limit
        """
        if self.state != SubscriberState.IDLE:
            return self.latest
        self.state = SubscriberState.OPEN

        while self.state == SubscriberState.OPEN:
            error: Optional[ProgressTransportError] = None
            try:
                for payload in self._connect(self.session_id):
                    if self._stop.is_set():
                        break
                    self._handle(payload)
                    if self.completed:
                        break
            except ProgressTransportError as e:
                error = e

            # Completion wins over any transport error seen at the same time
            if self.completed or self._stop.is_set():
                final = self.latest
                self.state = SubscriberState.CLOSED
                return final

            if self.reconnects >= self.max_reconnects:
                self.state = SubscriberState.CLOSED
                logger.error(
                    "progress_stream_abandoned",
                    session_id=self.session_id,
                    reconnects=self.reconnects
                )
                raise error or ProgressTransportError(
                    self.session_id, "Progress stream ended before completion"
                )

            self.reconnects += 1
            logger.warning(
                "progress_stream_reconnect",
                session_id=self.session_id,
                attempt=self.reconnects,
                error=error.message if error else "stream ended"
            )

        return self.latest

    def close(self) -> None:
        """Stop streaming and drop all state."""
        self._stop.set()
        self.state = SubscriberState.CLOSED
        self.completed = False
        self.latest = None
        self.reconnects = 0


# Singleton instance for convenience
_progress_channel: Optional[ProgressChannel] = None


def get_progress_channel() -> ProgressChannel:
    """Get or create the process-wide ProgressChannel."""
    global _progress_channel
    if _progress_channel is None:
        _progress_channel = ProgressChannel()
    return _progress_channel
