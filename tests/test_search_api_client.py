from __future__ import annotations

import json
import socket
import sys
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib import error, request

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from paperchat.services import (
    SearchApiClient,
    SearchApiConnectionError,
    SearchApiResponseError,
    SearchApiTimeoutError,
)
from paperchat.services.session_controller import ChangeKind, SessionController


def _session_payload(session_id: int, title: str) -> dict[str, object]:
    return {
        "id": session_id,
        "title": title,
        "username": "tester",
        "created_at": "2024-03-01T08:00:00",
        "updated_at": "2024-03-02T09:30:00",
    }


def _make_handler(state: dict[str, object]) -> type[BaseHTTPRequestHandler]:
    class Handler(BaseHTTPRequestHandler):
        def _record(self, body: object = None) -> None:
            requests = state.setdefault("requests", [])
            if isinstance(requests, list):
                requests.append(
                    {
                        "method": self.command,
                        "path": self.path,
                        "headers": {key.lower(): value for key, value in self.headers.items()},
                        "body": body,
                    }
                )

        def _reply(self) -> None:
            responses = state.setdefault("responses", {})
            queue = responses.get((self.command, self.path)) if isinstance(responses, dict) else None
            if queue:
                current = queue.pop(0)
            else:
                current = {"status": 404, "body": {"detail": "Not Found"}}
            status = int(current.get("status", 200))
            body = current.get("body", {})
            content_type = current.get("content_type", "application/json")
            if not isinstance(body, (bytes, bytearray)):
                body = json.dumps(body).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def do_GET(self) -> None:  # noqa: N802 - signature defined by BaseHTTPRequestHandler
            self._record()
            self._reply()

        def do_POST(self) -> None:  # noqa: N802 - signature defined by BaseHTTPRequestHandler
            length = int(self.headers.get("Content-Length", "0"))
            raw_body = self.rfile.read(length)
            try:
                payload = json.loads(raw_body.decode("utf-8")) if raw_body else {}
            except json.JSONDecodeError:
                payload = {}
            self._record(payload)
            self._reply()

        def log_message(self, format: str, *args: object) -> None:  # noqa: D401, N802 - disable noisy logs
            """Silence default request logging during tests."""

    return Handler


@pytest.fixture()
def search_server() -> tuple[dict[str, object], str]:
    state: dict[str, object] = {"requests": [], "responses": {}}
    server = ThreadingHTTPServer(("127.0.0.1", 0), _make_handler(state))
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    base_url = f"http://{server.server_address[0]}:{server.server_address[1]}/api/v1"
    try:
        yield state, base_url
    finally:
        server.shutdown()
        thread.join()


def _queue(state: dict[str, object], method: str, path: str, *responses: dict[str, object]) -> None:
    state["responses"].setdefault((method, path), []).extend(responses)  # type: ignore[union-attr]


def _client(base_url: str, **kwargs: object) -> SearchApiClient:
    options: dict[str, object] = {"timeout": 5.0, "max_retries": 2, "retry_backoff": 0.0}
    options.update(kwargs)
    return SearchApiClient(base_url=base_url, **options)


def test_list_sessions_sends_user_header_and_limit(search_server) -> None:
    state, base_url = search_server
    _queue(
        state,
        "GET",
        "/api/v1/sessions/?limit=50",
        {"body": [_session_payload(2, "Newest"), _session_payload(1, "")]},
    )

    sessions = _client(base_url + "/").list_sessions("user_42")

    assert [session.id for session in sessions] == [2, 1]
    assert sessions[1].display_title == "Untitled chat"
    sent = state["requests"][0]
    assert sent["path"] == "/api/v1/sessions/?limit=50"
    assert sent["headers"]["x-user-id"] == "user_42"
    assert sent["headers"]["ngrok-skip-browser-warning"] == "true"


def test_get_session_detail_parses_messages(search_server) -> None:
    state, base_url = search_server
    _queue(
        state,
        "GET",
        "/api/v1/sessions/7",
        {
            "body": {
                "id": 7,
                "title": "Rice",
                "messages": [
                    {"id": 1, "role": "user", "content": "Q"},
                    {"id": 2, "role": "assistant", "content": "A", "references": []},
                ],
            }
        },
    )

    detail = _client(base_url).get_session_detail("u", 7)

    assert detail.id == 7
    assert [message.id for message in detail.messages] == ["1", "2"]


def test_send_query_posts_payload_verbatim(search_server) -> None:
    state, base_url = search_server
    _queue(
        state,
        "POST",
        "/api/v1/chat/send",
        {
            "body": {
                "session_id": 15,
                "message_id": 301,
                "ai_response": "Answer [1]",
                "references": [{"paper_id": "p1", "title": "Paper one"}],
                "metadata": {"took_ms": 12},
            }
        },
    )
    payload = {"query": "rice", "session_id": None, "faculty": "Agriculture"}

    response = _client(base_url).send_query("u", payload)

    assert response.session_id == 15
    assert response.references[0].title == "Paper one"
    assert response.metadata == {"took_ms": 12}
    sent = state["requests"][0]
    assert sent["body"] == payload
    assert sent["headers"]["content-type"] == "application/json"


def test_get_retries_on_server_error(search_server) -> None:
    state, base_url = search_server
    _queue(
        state,
        "GET",
        "/api/v1/master/faculties",
        {"status": 503, "body": {"message": "warming up"}},
        {"body": ["Agriculture", "", "Engineering"]},
    )

    faculties = _client(base_url).list_faculties("u")

    assert faculties == ["Agriculture", "Engineering"]
    assert len(state["requests"]) == 2


def test_send_query_is_never_retried(search_server) -> None:
    state, base_url = search_server
    _queue(
        state,
        "POST",
        "/api/v1/chat/send",
        {"status": 503, "body": {"message": "overloaded"}},
        {"body": {"session_id": 1, "message_id": 1, "ai_response": "late"}},
    )

    with pytest.raises(SearchApiResponseError) as excinfo:
        _client(base_url).send_query("u", {"query": "q", "session_id": None})

    assert "overloaded" in str(excinfo.value)
    assert excinfo.value.status == 503
    assert len(state["requests"]) == 1


def test_client_errors_are_not_retried_and_summarised(search_server) -> None:
    state, base_url = search_server
    _queue(
        state,
        "GET",
        "/api/v1/master/departments",
        {"status": 422, "body": {"detail": [{"loc": ["query"], "msg": "field required"}]}},
    )

    with pytest.raises(SearchApiResponseError) as excinfo:
        _client(base_url).list_departments("u")

    assert str(excinfo.value) == "field required"
    assert len(state["requests"]) == 1


def test_non_json_response_reports_content_type(search_server) -> None:
    state, base_url = search_server
    _queue(
        state,
        "GET",
        "/api/v1/sessions/3",
        {"body": b"<html>tunnel</html>", "content_type": "text/html"},
    )

    with pytest.raises(SearchApiResponseError) as excinfo:
        _client(base_url).get_session_detail("u", 3)

    assert "text/html" in str(excinfo.value)


def test_malformed_payload_becomes_response_error(search_server) -> None:
    state, base_url = search_server
    _queue(
        state,
        "GET",
        "/api/v1/sessions/4",
        {"body": {"id": 4, "messages": [{"id": 1, "role": "system", "content": "?"}]}},
    )

    with pytest.raises(SearchApiResponseError):
        _client(base_url).get_session_detail("u", 4)


def test_timeout_is_reported_as_timeout_error(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = 0

    def _raise_timeout(req: request.Request, *args: object, **kwargs: object) -> None:
        nonlocal calls
        calls += 1
        assert kwargs["timeout"] == 1.5
        raise error.URLError(socket.timeout("timed out"))

    monkeypatch.setattr(request, "urlopen", _raise_timeout)

    client = SearchApiClient(timeout=1.5, max_retries=0)

    with pytest.raises(SearchApiTimeoutError) as excinfo:
        client.send_query("u", {"query": "q", "session_id": None})

    assert calls == 1
    assert "timed out" in str(excinfo.value)


def test_unreachable_backend_raises_connection_error() -> None:
    with socket.socket() as probe:
        probe.bind(("127.0.0.1", 0))
        port = probe.getsockname()[1]

    client = SearchApiClient(base_url=f"http://127.0.0.1:{port}", max_retries=1, retry_backoff=0.0)

    with pytest.raises(SearchApiConnectionError) as excinfo:
        client.list_sessions("u")

    assert not isinstance(excinfo.value, SearchApiTimeoutError)


def test_error_body_summary_prefers_message_fields() -> None:
    summarize = SearchApiClient._summarize_error_body

    assert summarize(b'{"message": "Session   not found"}') == "Session not found"
    assert summarize(b'{"detail": "Internal Server Error"}') == "Internal Server Error"
    assert summarize(b"plain failure") == "plain failure"
    assert summarize(b"") == ""


def test_server_fault_on_session_load_is_reported_as_backend_error(search_server) -> None:
    state, base_url = search_server
    _queue(
        state,
        "GET",
        "/api/v1/sessions/4",
        {"status": 500, "body": {"detail": "database unavailable"}},
    )
    controller = SessionController(_client(base_url, max_retries=0), user_id="user_42")
    messages: list[str] = []
    controller.add_listener(
        lambda event: messages.append(event.message)
        if event.kind is ChangeKind.ERROR
        else None
    )

    controller.select_session(4)

    assert messages == ["Backend error while loading session 4. Try another session."]
    assert controller.current_session_id is None


def test_client_fault_on_session_load_keeps_backend_reason(search_server) -> None:
    state, base_url = search_server
    _queue(
        state,
        "GET",
        "/api/v1/sessions/9",
        {"status": 404, "body": {"detail": "Session not found"}},
    )
    controller = SessionController(_client(base_url, max_retries=0), user_id="user_42")
    messages: list[str] = []
    controller.add_listener(
        lambda event: messages.append(event.message)
        if event.kind is ChangeKind.ERROR
        else None
    )

    controller.select_session(9)

    assert messages == ["Failed to load session: Session not found"]


def test_answer_without_message_id_is_reported_and_not_appended(search_server) -> None:
    state, base_url = search_server
    _queue(
        state,
        "POST",
        "/api/v1/chat/send",
        {"body": {"session_id": 5, "ai_response": "orphan", "references": []}},
    )
    controller = SessionController(_client(base_url), user_id="user_42")
    messages: list[str] = []
    controller.add_listener(
        lambda event: messages.append(event.message)
        if event.kind is ChangeKind.ERROR
        else None
    )

    assert controller.send_query("question") is True

    assert [entry.content for entry in controller.transcript] == ["question"]
    assert controller.current_session_id is None
    assert controller.sending is False
    assert len(messages) == 1
    assert "message_id" in messages[0]
