"""
HTTP client for the import API.

Used by remote callers (scripts, other services) to resolve identifiers,
submit an import and follow its progress stream.
"""

import json
from typing import Iterator, Optional

import requests
import structlog

from config import settings
from exceptions import (
    AppError,
    ImportRequestError,
    ProgressTransportError,
    ResolutionError,
)
from models.import_resolution import ResolutionRequest, ResolutionResult
from models.import_session import ImportRequest, ImportSession

logger = structlog.get_logger(__name__)

SSE_DATA_PREFIX = "data:"


def parse_sse_lines(lines) -> Iterator[dict]:
    """
    Decode `data: <json>` events from an iterable of text lines.

    Multi-line data fields are joined; comments and other fields are
    ignored. An event ends at a blank line.
    """
    buffer: list[str] = []
    for line in lines:
        if line is None:
            continue
        if isinstance(line, bytes):
            line = line.decode("utf-8")
        line = line.rstrip("\r")

        if not line:
            if buffer:
                yield json.loads("\n".join(buffer))
                buffer = []
            continue

        if line.startswith(SSE_DATA_PREFIX):
            buffer.append(line[len(SSE_DATA_PREFIX):].lstrip())

    if buffer:
        yield json.loads("\n".join(buffer))


class ImportApiClient:
    """Thin requests wrapper around /api/import."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ):
        self.base_url = (base_url or settings.import_api_url).rstrip("/")
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/import{path}"

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            return error.get("message") or str(error)
        return str(body.get("detail", body)) if isinstance(body, dict) else str(body)

    # ===================
    # RESOLVE
    # ===================

    def resolve_entities(self, request: ResolutionRequest) -> ResolutionResult:
        """
        POST /api/import/resolve.

        Raises:
            ResolutionError: On transport failure or a non-2xx response
        """
        payload = {
            "usernames": sorted(request.usernames),
            "location_names": sorted(request.location_names),
            "serial_numbers": sorted(request.serial_numbers),
        }
        try:
            response = self.session.post(
                self._url("/resolve"),
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error("resolve_request_failed", error=str(e))
            raise ResolutionError(f"Resolve request failed: {e}")

        if not response.ok:
            raise ResolutionError(
                self._error_message(response),
                details={"status_code": response.status_code}
            )
        return ResolutionResult.model_validate(response.json())

    # ===================
    # SUBMIT
    # ===================

    def submit_import(self, request: ImportRequest, timeout: Optional[float] = None) -> ImportSession:
        """
        POST /api/import/assets and wait for the final session.

        Never retried: a resubmission would duplicate writes.
        """
        logger.info(
            "submitting_import",
            session_id=request.session_id,
            rows=len(request.rows)
        )
        try:
            response = self.session.post(
                self._url("/assets"),
                data=request.model_dump_json(),
                headers={**self._headers(), "Content-Type": "application/json"},
                timeout=timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error("submit_import_failed", session_id=request.session_id, error=str(e))
            raise AppError(
                code="IMPORT_SUBMIT_FAILED",
                message=f"Import submission failed: {e}",
                status_code=502,
                details={"session_id": request.session_id}
            )

        if response.status_code == 422:
            raise ImportRequestError(self._error_message(response))
        if not response.ok:
            raise AppError(
                code="IMPORT_SUBMIT_FAILED",
                message=self._error_message(response),
                status_code=response.status_code,
                details={"session_id": request.session_id}
            )
        return ImportSession.model_validate(response.json())

    # ===================
    # PROGRESS
    # ===================

    def stream_progress(self, session_id: str) -> Iterator[dict]:
        """
        GET /api/import/progress/{session_id} as server-sent events.

        Raises:
            ProgressTransportError: If the connection fails or drops
        """
        try:
            with self.session.get(
                self._url(f"/progress/{session_id}"),
                headers={**self._headers(), "Accept": "text/event-stream"},
                stream=True,
                timeout=(self.timeout, None),
            ) as response:
                if not response.ok:
                    raise ProgressTransportError(
                        session_id, f"Progress stream returned {response.status_code}"
                    )
                yield from parse_sse_lines(response.iter_lines(decode_unicode=True))
        except requests.exceptions.RequestException as e:
            logger.warning("progress_stream_dropped", session_id=session_id, error=str(e))
            raise ProgressTransportError(session_id, f"Progress stream dropped: {e}")
        except ValueError as e:
            raise ProgressTransportError(session_id, f"Malformed progress event: {e}")
