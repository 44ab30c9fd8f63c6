"""
Import orchestration.

prepare_import runs filter, transform, resolve and finalize without
writing anything. ImportExecutor submits finalized rows and follows the
session's progress until it completes, fails or times out.
"""

import random
import string
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from config import settings
from exceptions import (
    ImportStateError,
    ImportTimeoutError,
)
from models.import_filter import FilterRule
from models.import_mapping import ColumnMapping
from models.import_session import (
    ConflictPolicy,
    ExecutorState,
    FinalizedRow,
    ImportPreview,
    ImportRequest,
    ImportSession,
    ImportSummary,
)
from parsers.transformation_registry import get_mappings, is_source_supported, transform_rows
from services.entity_resolver_service import (
    EntityResolverService,
    build_request,
    get_entity_resolver_service,
)
from services.import_filter_service import apply_filter
from services.progress_channel_service import ProgressSubscriber
from services.row_transformer_service import finalize_rows

logger = structlog.get_logger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(number: int) -> str:
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


def generate_session_id() -> str:
    """Base-36 millisecond clock followed by random base-36 characters."""
    stamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(random.choices(_BASE36, k=11))
    return stamp + suffix


def prepare_import(
    source_id: str,
    category: Optional[str],
    raw_rows: list[dict[str, str]],
    extra_rules: Optional[list[FilterRule]] = None,
    resolver: Optional[EntityResolverService] = None,
    now: Optional[datetime] = None,
) -> ImportPreview:
    """
    Run every stage before submission.

    Args:
        source_id: Import source id
        category: Upload category for the filter registry
        raw_rows: Raw rows keyed by source column
        extra_rules: Caller filter rules ANDed after the registered ones
        resolver: Entity resolver (defaults to the singleton)
        now: Clock for daysSince rules

    Returns:
        ImportPreview with finalized rows ready for start_import
    """
    filtered = apply_filter(raw_rows, source_id, category, extra_rules, now)
    included = filtered.included

    results = transform_rows(source_id, included)
    request = build_request(results)

    resolver = resolver or get_entity_resolver_service()
    resolution = resolver.resolve_with_cascade(
        request.usernames,
        request.location_names,
        request.serial_numbers,
    )

    rows = finalize_rows(included, results, resolution)

    preview = ImportPreview(
        source_id=source_id,
        category=category,
        filter_stats=filtered.stats,
        rows=rows,
        unresolved_usernames=sorted({r.unresolved_username for r in rows if r.unresolved_username}),
        unresolved_locations=sorted({r.unresolved_location for r in rows if r.unresolved_location}),
        conflict_count=sum(1 for r in rows if r.has_conflict),
    )

    logger.info(
        "import_prepared",
        source_id=source_id,
        category=category,
        included=filtered.stats.included,
        excluded=filtered.stats.excluded,
        ready=preview.ready_count,
        invalid=preview.invalid_count,
        conflicts=preview.conflict_count
    )
    return preview


class ImportExecutor:
    """
    Client-side import state machine.

    IDLE -> SUBMITTING -> STREAMING -> COMPLETED | FAILED

    `client` needs submit_import(request) and
    stream_progress(session_id); ImportApiClient provides both.
    """

    def __init__(
        self,
        client,
        resolver: Optional[EntityResolverService] = None,
        timeout: Optional[float] = None,
        max_reconnects: Optional[int] = None,
    ):
        self.client = client
        self.resolver = resolver
        self.timeout = timeout or settings.import_timeout_seconds
        self.max_reconnects = max_reconnects
        self._state = ExecutorState.IDLE
        self._lock = threading.Lock()
        self._pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="import")
        self.subscriber: Optional[ProgressSubscriber] = None

    @property
    def state(self) -> ExecutorState:
        return self._state

    def _transition(self, allowed: tuple[ExecutorState, ...], target: ExecutorState, action: str):
        with self._lock:
            if self._state not in allowed:
                raise ImportStateError(self._state.value, action)
            logger.debug("executor_state_changed", old=self._state.value, new=target.value)
            self._state = target

    def prepare_import(
        self,
        source_id: str,
        category: Optional[str],
        raw_rows: list[dict[str, str]],
        extra_rules: Optional[list[FilterRule]] = None,
    ) -> ImportPreview:
        return prepare_import(source_id, category, raw_rows, extra_rules, resolver=self.resolver)

    def start_import(
        self,
        finalized_rows: list[FinalizedRow],
        mappings: Optional[list[ColumnMapping]] = None,
        conflict_policy: ConflictPolicy = ConflictPolicy.SKIP,
        session_id: Optional[str] = None,
        source_tag: Optional[str] = None,
        on_progress: Optional[Callable[[ImportSession], None]] = None,
    ) -> ImportSummary:
        """
        Submit once and wait for the final session.

        Raises:
            ImportStateError: If an import is already running
            ImportTimeoutError: If the wait exceeds the timeout; the
                server job keeps running
        """
        self._transition(
            (ExecutorState.IDLE, ExecutorState.COMPLETED, ExecutorState.FAILED),
            ExecutorState.SUBMITTING,
            "start an import",
        )

        session_id = session_id or generate_session_id()
        if mappings is None and source_tag and is_source_supported(source_tag):
            mappings = get_mappings(source_tag)

        try:
            request = ImportRequest(
                session_id=session_id,
                rows=finalized_rows,
                mappings=mappings or [],
                conflict_policy=conflict_policy,
                source_tag=source_tag,
            )
        except ValueError:
            self._state = ExecutorState.FAILED
            raise

        self.subscriber = ProgressSubscriber(
            session_id,
            self.client.stream_progress,
            max_reconnects=self.max_reconnects,
            on_progress=on_progress,
        )

        logger.info("import_submitting", session_id=session_id, rows=len(finalized_rows))
        submission = self._pool.submit(self.client.submit_import, request)
        progress = self._pool.submit(self.subscriber.run)
        self._transition((ExecutorState.SUBMITTING,), ExecutorState.STREAMING, "stream progress")

        try:
            session = submission.result(timeout=self.timeout)
        except FutureTimeout:
            self._state = ExecutorState.FAILED
            self.subscriber.close()
            logger.error("import_timed_out", session_id=session_id, timeout_seconds=self.timeout)
            raise ImportTimeoutError(session_id, self.timeout)
        except Exception as e:
            self._state = ExecutorState.FAILED
            self.subscriber.close()
            logger.error(
                "import_failed",
                session_id=session_id,
                code=getattr(e, "code", None),
                error=str(e)
            )
            raise

        # The response is authoritative; the stream only drives live updates
        if not progress.done():
            self.subscriber.close()
        elif progress.exception() is not None:
            logger.warning(
                "progress_stream_failed",
                session_id=session_id,
                error=str(progress.exception())
            )

        self._state = ExecutorState.COMPLETED
        logger.info(
            "import_finished",
            session_id=session_id,
            successful=session.successful,
            failed=session.failed,
            skipped=session.skipped
        )
        return ImportSummary(session=session, completed_at=datetime.now(timezone.utc))

    def shutdown(self) -> None:
        if self.subscriber is not None:
            self.subscriber.close()
        self._pool.shutdown(wait=False)
