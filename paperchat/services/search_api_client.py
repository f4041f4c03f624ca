"""HTTP client for the document-search assistant backend."""

from __future__ import annotations

import json
import logging
import socket
import time
from typing import Any
from urllib import error, parse, request

from ..config import (
    DEFAULT_API_BASE_URL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SESSION_LIMIT,
    ClientSettings,
    normalize_base_url,
)
from ..logging import log_call
from .models import (
    MalformedPayloadError,
    QueryResponse,
    Session,
    SessionDetail,
    SessionId,
)


logger = logging.getLogger(__name__)


# the trailing slash avoids a redirect that breaks cross-origin preflight
SESSIONS_PATH = "/sessions/"
SESSION_DETAIL_PATH = "/sessions/{session_id}"
CHAT_SEND_PATH = "/chat/send"
FACULTIES_PATH = "/master/faculties"
DEPARTMENTS_PATH = "/master/departments"

USER_HEADER = "X-User-ID"
RETRYABLE_STATUSES = frozenset({408, 409, 429, 500, 502, 503, 504})


class SearchApiError(RuntimeError):
    """Base exception for backend failures."""


class SearchApiConnectionError(SearchApiError):
    """Raised when the backend cannot be reached."""


class SearchApiTimeoutError(SearchApiConnectionError):
    """Raised when the backend does not answer within the request timeout."""


class SearchApiResponseError(SearchApiError):
    """Raised when the backend answers with an error or an unusable body."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class SearchApiClient:
    """Blocking JSON client; callers run it off the UI thread."""

    @log_call(logger=logger)
    def __init__(
        self,
        *,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_backoff: float = 0.5,
    ) -> None:
        self._base_url = normalize_base_url(base_url)
        self.timeout = timeout
        self.max_retries = max(max_retries, 0)
        self.retry_backoff = retry_backoff

    @classmethod
    def from_settings(cls, settings: ClientSettings) -> "SearchApiClient":
        return cls(
            base_url=settings.base_url,
            timeout=settings.request_timeout,
            max_retries=settings.max_retries,
        )

    # ------------------------------------------------------------------
    # Endpoints
    @log_call(logger=logger)
    def list_sessions(
        self, user_id: str, limit: int = DEFAULT_SESSION_LIMIT
    ) -> list[Session]:
        """Return the user's most recent sessions, newest first."""

        query = parse.urlencode({"limit": int(limit)})
        data = self._request_json("GET", f"{SESSIONS_PATH}?{query}", user_id)
        if not isinstance(data, list):
            raise SearchApiResponseError("Session list response must be a JSON array")
        sessions = self._parse(Session.from_api, data, many=True)
        logger.info(
            "Fetched session list",
            extra={"session_count": len(sessions), "limit": limit},
        )
        return sessions

    @log_call(logger=logger)
    def get_session_detail(self, user_id: str, session_id: SessionId) -> SessionDetail:
        path = SESSION_DETAIL_PATH.format(session_id=parse.quote(str(session_id), safe=""))
        data = self._request_json("GET", path, user_id)
        detail = self._parse(SessionDetail.from_api, data)
        logger.info(
            "Fetched session detail",
            extra={"session_id": session_id, "message_count": len(detail.messages)},
        )
        return detail

    @log_call(logger=logger)
    def send_query(self, user_id: str, payload: dict[str, Any]) -> QueryResponse:
        """Submit a query; never retried since the backend may persist it."""

        logger.info(
            "Dispatching query",
            extra={
                "session_id": payload.get("session_id"),
                "selected_count": len(payload.get("selected_paper_ids") or []),
                "filter_keys": sorted(
                    key
                    for key in payload
                    if key not in {"query", "session_id", "selected_paper_ids"}
                ),
                "base_url": self._base_url,
            },
        )
        data = self._request_json("POST", CHAT_SEND_PATH, user_id, payload, retry=False)
        response = self._parse(QueryResponse.from_api, data)
        logger.info(
            "Query answered",
            extra={
                "session_id": response.session_id,
                "message_id": response.message_id,
                "reference_count": len(response.references),
            },
        )
        return response

    @log_call(logger=logger)
    def list_faculties(self, user_id: str) -> list[str]:
        return self._string_list(self._request_json("GET", FACULTIES_PATH, user_id))

    @log_call(logger=logger)
    def list_departments(self, user_id: str) -> list[str]:
        return self._string_list(self._request_json("GET", DEPARTMENTS_PATH, user_id))

    # ------------------------------------------------------------------
    # Transport
    def _request(
        self,
        method: str,
        path: str,
        user_id: str,
        payload: dict[str, Any] | None = None,
        *,
        retry: bool = True,
    ) -> tuple[bytes, str]:
        url = f"{self._base_url}{path}"
        data: bytes | None = None
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            USER_HEADER: user_id,
            # tunnelled deployments otherwise answer with an HTML interstitial
            "ngrok-skip-browser-warning": "true",
        }
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
        request_obj = request.Request(url, data=data, headers=headers, method=method)
        attempts = self.max_retries + 1 if retry else 1
        last_error: SearchApiError | None = None
        for attempt in range(attempts):
            try:
                logger.debug(
                    "Backend request attempt",
                    extra={"method": method, "url": url, "attempt": attempt + 1},
                )
                with request.urlopen(request_obj, timeout=self.timeout) as response:
                    status = response.getcode()
                    body = response.read()
                    content_type = response.headers.get("Content-Type", "")
                if status >= 400:
                    raise SearchApiResponseError(
                        self._build_http_error_message(status, body), status=status
                    )
                return body, content_type
            except error.HTTPError as exc:
                body = exc.read() if hasattr(exc, "read") else b""
                last_error = SearchApiResponseError(
                    self._build_http_error_message(exc.code, body), status=exc.code
                )
                if not self._should_retry(exc.code):
                    break
            except error.URLError as exc:
                if isinstance(exc.reason, (TimeoutError, socket.timeout)):
                    last_error = SearchApiTimeoutError(self._timeout_message(url))
                else:
                    last_error = SearchApiConnectionError(
                        f"Network error: unable to reach {url} ({exc.reason})"
                    )
            except (TimeoutError, socket.timeout):
                last_error = SearchApiTimeoutError(self._timeout_message(url))
            if attempt < attempts - 1:
                logger.warning(
                    "Backend request failed, retrying",
                    extra={
                        "method": method,
                        "url": url,
                        "attempt": attempt + 1,
                        "error": str(last_error) if last_error else None,
                    },
                )
                time.sleep(self.retry_backoff * (2**attempt))
        logger.error(
            "Backend request failed",
            extra={"method": method, "url": url, "error": str(last_error)},
        )
        if last_error is not None:
            raise last_error
        raise SearchApiError("Unexpected backend request failure")

    def _request_json(
        self,
        method: str,
        path: str,
        user_id: str,
        payload: dict[str, Any] | None = None,
        *,
        retry: bool = True,
    ) -> Any:
        body, content_type = self._request(method, path, user_id, payload, retry=retry)
        if "application/json" not in content_type.lower():
            preview = body[:200].decode("utf-8", errors="replace")
            logger.error(
                "Backend returned a non-JSON body",
                extra={"path": path, "content_type": content_type, "preview": preview},
            )
            raise SearchApiResponseError(
                f"Backend returned {content_type or 'non-JSON content'} instead of JSON"
            )
        try:
            return json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise SearchApiResponseError("Invalid JSON from backend") from None

    def _timeout_message(self, url: str) -> str:
        return f"Request to {url} timed out after {self.timeout:g}s"

    @staticmethod
    def _parse(factory, data: Any, *, many: bool = False) -> Any:
        try:
            if many:
                return [factory(item) for item in data]
            return factory(data)
        except MalformedPayloadError as exc:
            raise SearchApiResponseError(f"Malformed backend payload: {exc}") from exc

    @staticmethod
    def _string_list(data: Any) -> list[str]:
        if not isinstance(data, list):
            raise SearchApiResponseError("Expected a JSON array of strings")
        return [str(item) for item in data if item is not None and str(item).strip()]

    @staticmethod
    def _should_retry(status: int | None) -> bool:
        if status is None:
            return True
        return status in RETRYABLE_STATUSES

    @staticmethod
    def _build_http_error_message(status: int | None, body: bytes | str | None) -> str:
        summary = SearchApiClient._summarize_error_body(body)
        if status is not None:
            if summary:
                return summary
            return f"Backend returned HTTP {status}"
        return summary or "Backend request failed"

    @staticmethod
    def _summarize_error_body(body: bytes | str | None) -> str:
        """Pull a human readable message out of an error response body."""

        if body is None:
            return ""
        if isinstance(body, bytes):
            text = body.decode("utf-8", errors="replace")
        else:
            text = str(body)
        text = text.strip()
        if not text:
            return ""
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return " ".join(text.split())[:300]
        if isinstance(data, dict):
            for key in ("message", "detail", "error"):
                value = data.get(key)
                if isinstance(value, str) and value.strip():
                    return " ".join(value.split())
                if isinstance(value, dict):
                    nested = value.get("message")
                    if isinstance(nested, str) and nested.strip():
                        return " ".join(nested.split())
                if isinstance(value, list) and value:
                    # FastAPI validation errors arrive as a list of {loc, msg}
                    messages = [
                        str(item.get("msg"))
                        for item in value
                        if isinstance(item, dict) and item.get("msg")
                    ]
                    if messages:
                        return "; ".join(messages)
        return " ".join(text.split())[:300]


__all__ = [
    "SearchApiClient",
    "SearchApiConnectionError",
    "SearchApiError",
    "SearchApiResponseError",
    "SearchApiTimeoutError",
]
