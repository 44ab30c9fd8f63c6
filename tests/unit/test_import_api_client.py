"""
Unit tests for the import API HTTP client.
"""

from unittest.mock import MagicMock

import pytest
import requests

from exceptions import AppError, ImportRequestError, ProgressTransportError, ResolutionError
from integrations.import_api_client import ImportApiClient, parse_sse_lines
from models.import_resolution import ResolutionRequest
from models.import_session import ImportRequest
from tests.factories import FinalizedRowFactory


def _response(status_code=200, body=None):
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.json.return_value = body if body is not None else {}
    response.text = ""
    return response


@pytest.fixture
def http():
    return MagicMock()


@pytest.fixture
def client(http):
    return ImportApiClient(base_url="https://assets.test/", token="tok", session=http)


# ===================
# SSE PARSING
# ===================

class TestParseSseLines:
    """Tests for parse_sse_lines."""

    def test_events_split_on_blank_lines(self):
        lines = ['data: {"processed": 1}', "", 'data: {"processed": 2}', ""]
        assert [e["processed"] for e in parse_sse_lines(lines)] == [1, 2]

    def test_comments_and_other_fields_ignored(self):
        lines = [": keep-alive", "event: progress", 'data: {"a": 1}', ""]
        assert list(parse_sse_lines(lines)) == [{"a": 1}]

    def test_multi_line_data(self):
        lines = ['data: {"a":', "data: 1}", ""]
        assert list(parse_sse_lines(lines)) == [{"a": 1}]

    def test_trailing_event_without_blank_line(self):
        lines = [b'data: {"a": 2}\r']
        assert list(parse_sse_lines(lines)) == [{"a": 2}]


# ===================
# REQUESTS
# ===================

class TestResolveEntities:
    """Tests for resolve_entities."""

    def test_posts_sorted_lists(self, client, http):
        http.post.return_value = _response(body={"user_map": {"jsmith": None}})

        result = client.resolve_entities(ResolutionRequest(usernames={"b", "a"}))

        args, kwargs = http.post.call_args
        assert args[0] == "https://assets.test/api/import/resolve"
        assert kwargs["json"]["usernames"] == ["a", "b"]
        assert kwargs["headers"]["Authorization"] == "Bearer tok"
        assert result.user_map == {"jsmith": None}

    def test_server_error(self, client, http):
        http.post.return_value = _response(503, {"error": {"message": "directory down"}})

        with pytest.raises(ResolutionError) as exc_info:
            client.resolve_entities(ResolutionRequest())

        assert exc_info.value.message == "directory down"

    def test_transport_error(self, client, http):
        http.post.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(ResolutionError):
            client.resolve_entities(ResolutionRequest())


class TestSubmitImport:
    """Tests for submit_import."""

    @pytest.fixture
    def request_body(self):
        return ImportRequest(session_id="sess-1", rows=FinalizedRowFactory.create_batch(1))

    def test_returns_session(self, client, http, request_body):
        http.post.return_value = _response(body={"session_id": "sess-1", "total": 1, "processed": 1})

        session = client.submit_import(request_body)

        assert session.is_complete
        assert http.post.call_args[0][0] == "https://assets.test/api/import/assets"

    def test_unprocessable_payload(self, client, http, request_body):
        http.post.return_value = _response(422, {"detail": "rows: field required"})

        with pytest.raises(ImportRequestError):
            client.submit_import(request_body)

    def test_other_failures(self, client, http, request_body):
        http.post.return_value = _response(500, {"error": {"message": "boom"}})

        with pytest.raises(AppError) as exc_info:
            client.submit_import(request_body)

        assert exc_info.value.code == "IMPORT_SUBMIT_FAILED"
        assert exc_info.value.message == "boom"


class TestStreamProgress:
    """Tests for stream_progress."""

    def _stream(self, http, status_code=200, lines=None):
        response = _response(status_code)
        response.iter_lines.return_value = lines or []
        response.__enter__.return_value = response
        http.get.return_value = response
        return response

    def test_yields_events(self, client, http):
        self._stream(http, lines=['data: {"processed": 3}', ""])

        assert list(client.stream_progress("sess-1")) == [{"processed": 3}]
        assert http.get.call_args[1]["stream"] is True

    def test_bad_status(self, client, http):
        self._stream(http, status_code=404)

        with pytest.raises(ProgressTransportError):
            list(client.stream_progress("sess-1"))

    def test_dropped_connection(self, client, http):
        http.get.side_effect = requests.exceptions.ChunkedEncodingError("eof")

        with pytest.raises(ProgressTransportError):
            list(client.stream_progress("sess-1"))

    def test_malformed_event(self, client, http):
        self._stream(http, lines=["data: {not json", ""])

        with pytest.raises(ProgressTransportError):
            list(client.stream_progress("sess-1"))
