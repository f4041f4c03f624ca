"""Conversation state machine for the document-search client."""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from functools import partial
from typing import Any, Protocol

from ..config import DEFAULT_SESSION_LIMIT
from ..logging import log_call
from .citation_linker import Segment, link_citations, resolve_citation
from .filters import EMPTY_FILTERS, ActiveFilters, compile_filters
from .message_store import MessageStore
from .models import (
    QueryResponse,
    Reference,
    Role,
    Session,
    SessionDetail,
    SessionId,
    TranscriptEntry,
    WorkingSet,
)
from .scroll_targeter import RevealDirective, ScrollTargeter
from .search_api_client import SearchApiTimeoutError
from .task_runner import CancellationToken, InlineTaskRunner


logger = logging.getLogger(__name__)


class SearchBackend(Protocol):
    """Transport calls the controller depends on."""

    def list_sessions(self, user_id: str, limit: int = ...) -> list[Session]: ...

    def get_session_detail(self, user_id: str, session_id: SessionId) -> SessionDetail: ...

    def send_query(self, user_id: str, payload: dict[str, Any]) -> QueryResponse: ...


class TaskRunner(Protocol):
    def submit(
        self,
        task: Callable[[], Any],
        *,
        on_success: Callable[[Any], None],
        on_error: Callable[[Exception], None],
    ) -> None: ...


class ChangeKind(Enum):
    """Which part of the controller state an event describes."""

    TRANSCRIPT = "transcript"
    SESSIONS = "sessions"
    WORKING_SET = "working_set"
    FILTERS = "filters"
    SESSION = "session"
    LOADING = "loading"
    ERROR = "error"


class FailureKind(Enum):
    TRANSPORT = "transport"
    TIMEOUT = "timeout"


class RejectionReason(Enum):
    EMPTY_QUERY = "empty_query"
    SEND_IN_FLIGHT = "send_in_flight"
    SESSION_LOADING = "session_loading"


@dataclass(frozen=True)
class ControllerEvent:
    """Change notification delivered to listeners."""

    kind: ChangeKind
    message: str | None = None
    failure: FailureKind | None = None
    reveal: RevealDirective | None = None


ControllerListener = Callable[[ControllerEvent], None]


def build_payload(
    text: str,
    session_id: SessionId | None,
    working_set: WorkingSet,
    filters: ActiveFilters,
    *,
    this_year: int | None = None,
) -> dict[str, Any]:
    """Assemble the ``/chat/send`` body.

    ``selected_paper_ids`` is omitted rather than sent empty and only the
    facets that are set are merged in.
    """

    payload: dict[str, Any] = {"query": text, "session_id": session_id}
    if working_set:
        payload["selected_paper_ids"] = working_set.ids()
    payload.update(compile_filters(filters, this_year=this_year))
    return payload


def _looks_like_server_fault(exc: Exception, message: str) -> bool:
    status = getattr(exc, "status", None)
    if isinstance(status, int) and status >= 500:
        return True
    return "500" in message or "Internal" in message


class SessionController:
    """Own the active conversation and serialize every backend round trip.

    All methods must be called from one thread. Network work goes through
    ``runner``; its completion callbacks are expected on that same thread.
    The ``sending`` and ``session_loading`` flags are the only guards against
    overlapping operations.
    """

    def __init__(
        self,
        api: SearchBackend,
        *,
        user_id: str,
        runner: TaskRunner | None = None,
        session_limit: int = DEFAULT_SESSION_LIMIT,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.api = api
        self.user_id = user_id
        self.runner: TaskRunner = runner or InlineTaskRunner()
        self.session_limit = session_limit
        self._clock = clock or datetime.now
        self._store = MessageStore()
        self._targeter = ScrollTargeter()
        self._working_set = WorkingSet()
        self._filters: ActiveFilters = EMPTY_FILTERS
        self._sessions: list[Session] = []
        self._current_session_id: SessionId | None = None
        self._sessions_loading = False
        self._session_loading = False
        self._sending = False
        self._send_token: CancellationToken | None = None
        self._load_generation = 0
        self._refresh_generation = 0
        self._entry_counter = itertools.count(1)
        self._listeners: list[ControllerListener] = []

    # ------------------------------------------------------------------
    # Observation
    def add_listener(self, listener: ControllerListener) -> Callable[[], None]:
        """Subscribe to state changes and return an unsubscribe callable."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: ChangeKind, **details: Any) -> None:
        event = ControllerEvent(kind, **details)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Controller listener failed", extra={"event_kind": kind.value}
                )

    def _transcript_changed(self) -> None:
        reveal = self._targeter.observe(
            self._store.entries, session_loading=self._session_loading
        )
        self._emit(ChangeKind.TRANSCRIPT, reveal=reveal)

    def _reject(self, operation: str, reason: RejectionReason) -> bool:
        logger.debug(
            "Rejected controller operation",
            extra={"operation": operation, "reason": reason.value},
        )
        return False

    # ------------------------------------------------------------------
    # State
    @property
    def current_session_id(self) -> SessionId | None:
        return self._current_session_id

    @property
    def sessions(self) -> tuple[Session, ...]:
        return tuple(self._sessions)

    @property
    def transcript(self) -> tuple[TranscriptEntry, ...]:
        return self._store.entries

    @property
    def working_set(self) -> WorkingSet:
        return WorkingSet(self._working_set)

    @property
    def active_filters(self) -> ActiveFilters:
        return self._filters

    @property
    def sessions_loading(self) -> bool:
        return self._sessions_loading

    @property
    def session_loading(self) -> bool:
        return self._session_loading

    @property
    def sending(self) -> bool:
        return self._sending

    # ------------------------------------------------------------------
    # Session lifecycle
    @log_call(logger=logger, include_args=False)
    def start_new_chat(self) -> bool:
        """Reset to an unbound conversation. Rejected while a send is in flight."""

        if self._sending:
            return self._reject("start_new_chat", RejectionReason.SEND_IN_FLIGHT)
        # any detail load still in flight now belongs to a retired session
        self._load_generation += 1
        self._session_loading = False
        self._current_session_id = None
        self._store.clear()
        self._working_set.clear()
        self._filters = EMPTY_FILTERS
        logger.info("Started new chat")
        self._emit(ChangeKind.SESSION)
        self._emit(ChangeKind.LOADING)
        self._transcript_changed()
        self._emit(ChangeKind.WORKING_SET)
        self._emit(ChangeKind.FILTERS)
        return True

    @log_call(logger=logger)
    def select_session(self, session_id: SessionId) -> bool:
        """Bind to ``session_id`` and load its transcript."""

        if self._sending:
            return self._reject("select_session", RejectionReason.SEND_IN_FLIGHT)
        self._load_generation += 1
        generation = self._load_generation
        self._current_session_id = session_id
        self._working_set.clear()
        self._session_loading = True
        logger.info("Loading session", extra={"session_id": session_id})
        self._emit(ChangeKind.SESSION)
        self._emit(ChangeKind.WORKING_SET)
        self._emit(ChangeKind.LOADING)
        self.runner.submit(
            partial(self.api.get_session_detail, self.user_id, session_id),
            on_success=partial(self._on_session_loaded, generation, session_id),
            on_error=partial(self._on_session_failed, generation, session_id),
        )
        return True

    def _on_session_loaded(
        self, generation: int, session_id: SessionId, detail: SessionDetail
    ) -> None:
        if generation != self._load_generation:
            logger.debug("Discarding stale session detail", extra={"session_id": session_id})
            return
        # cleared first so the reveal is measured against the finished load
        self._session_loading = False
        self._store.replace(detail.messages)
        logger.info(
            "Session loaded",
            extra={"session_id": session_id, "message_count": len(detail.messages)},
        )
        self._emit(ChangeKind.LOADING)
        self._transcript_changed()

    def _on_session_failed(
        self, generation: int, session_id: SessionId, exc: Exception
    ) -> None:
        if generation != self._load_generation:
            logger.debug(
                "Discarding stale session failure",
                extra={"session_id": session_id, "error": str(exc)},
            )
            return
        message = str(exc) or "Failed to load chat."
        logger.error(
            "Failed to load session",
            extra={"session_id": session_id, "error": message},
        )
        if _looks_like_server_fault(exc, message):
            user_message = (
                f"Backend error while loading session {session_id}. Try another session."
            )
        else:
            user_message = f"Failed to load session: {message}"
        self._session_loading = False
        self._current_session_id = None
        self._store.clear()
        self._emit(ChangeKind.SESSION)
        self._emit(ChangeKind.LOADING)
        self._transcript_changed()
        self._emit(ChangeKind.ERROR, message=user_message, failure=self._failure_kind(exc))

    @log_call(logger=logger, include_args=False)
    def refresh_session_list(self) -> None:
        """Replace the session list; failures degrade to an empty list."""

        self._refresh_generation += 1
        generation = self._refresh_generation
        self._sessions_loading = True
        self._emit(ChangeKind.LOADING)
        self.runner.submit(
            partial(self.api.list_sessions, self.user_id, self.session_limit),
            on_success=partial(self._on_sessions_loaded, generation),
            on_error=partial(self._on_sessions_failed, generation),
        )

    def _on_sessions_loaded(self, generation: int, sessions: list[Session]) -> None:
        if generation != self._refresh_generation:
            return
        self._sessions = list(sessions)
        self._sessions_loading = False
        logger.debug("Session list refreshed", extra={"session_count": len(self._sessions)})
        self._emit(ChangeKind.SESSIONS)
        self._emit(ChangeKind.LOADING)

    def _on_sessions_failed(self, generation: int, exc: Exception) -> None:
        if generation != self._refresh_generation:
            return
        logger.warning("Session list refresh failed", extra={"error": str(exc)})
        self._sessions = []
        self._sessions_loading = False
        self._emit(ChangeKind.SESSIONS)
        self._emit(ChangeKind.LOADING)

    # ------------------------------------------------------------------
    # Working set and filters
    def toggle_document(self, paper_id: str, title: str) -> bool:
        """Flip selection of a document; return ``True`` if now selected."""

        selected = self._working_set.toggle(paper_id, title)
        logger.debug(
            "Toggled document",
            extra={"paper_id": paper_id, "selected": selected, "count": len(self._working_set)},
        )
        self._emit(ChangeKind.WORKING_SET)
        return selected

    def remove_document(self, paper_id: str) -> bool:
        removed = self._working_set.remove(paper_id)
        if removed:
            self._emit(ChangeKind.WORKING_SET)
        return removed

    def update_filters(self, filters: ActiveFilters) -> None:
        self._filters = filters
        logger.debug("Filters updated", extra={"filters": compile_filters(filters)})
        self._emit(ChangeKind.FILTERS)

    # ------------------------------------------------------------------
    # Sending
    @log_call(logger=logger, include_args=False)
    def send_query(self, text: str) -> bool:
        """Submit ``text`` as the next question.

        Returns ``False`` without touching any state when the query is blank,
        a send is already in flight, or a session is still loading.
        """

        query = (text or "").strip()
        if not query:
            return self._reject("send_query", RejectionReason.EMPTY_QUERY)
        if self._sending:
            return self._reject("send_query", RejectionReason.SEND_IN_FLIGHT)
        if self._session_loading:
            return self._reject("send_query", RejectionReason.SESSION_LOADING)

        created = self._clock()
        entry = TranscriptEntry(
            id=self._next_user_entry_id(created),
            role=Role.USER,
            content=query,
            created_at=created,
        )
        self._store.append(entry)
        self._transcript_changed()

        self._sending = True
        token = CancellationToken()
        self._send_token = token
        self._emit(ChangeKind.LOADING)

        was_unbound = self._current_session_id is None
        payload = build_payload(query, self._current_session_id, self._working_set, self._filters)
        logger.info(
            "Sending query",
            extra={
                "session_id": self._current_session_id,
                "query_preview": query[:120],
                "selected_count": len(self._working_set),
            },
        )
        try:
            self.runner.submit(
                partial(self.api.send_query, self.user_id, payload),
                on_success=partial(self._on_send_succeeded, token, was_unbound),
                on_error=partial(self._on_send_failed, token),
            )
        except Exception:
            self._release_send(token)
            raise
        return True

    @log_call(logger=logger, include_args=False)
    def cancel_send(self) -> bool:
        """Abandon the in-flight send; its eventual result is discarded."""

        token = self._send_token
        if not self._sending or token is None:
            return False
        token.cancel()
        logger.info("Send cancelled", extra={"session_id": self._current_session_id})
        self._release_send(token)
        return True

    def _on_send_succeeded(
        self, token: CancellationToken, was_unbound: bool, response: QueryResponse
    ) -> None:
        if token.cancelled:
            logger.debug(
                "Discarding answer for cancelled send",
                extra={"message_id": response.message_id},
            )
            return
        try:
            if was_unbound and self._current_session_id is None:
                self._current_session_id = response.session_id
                logger.info("Adopted new session", extra={"session_id": response.session_id})
                self._emit(ChangeKind.SESSION)
                self.refresh_session_list()
            answer = TranscriptEntry(
                id=f"assistant-{response.message_id}",
                role=Role.ASSISTANT,
                content=response.ai_response,
                created_at=self._clock(),
                references=tuple(response.references or ()),
            )
            self._store.append(answer)
            self._transcript_changed()
            self._working_set.clear()
            self._emit(ChangeKind.WORKING_SET)
        finally:
            self._release_send(token)

    def _on_send_failed(self, token: CancellationToken, exc: Exception) -> None:
        if token.cancelled:
            logger.debug("Discarding failure for cancelled send", extra={"error": str(exc)})
            return
        try:
            failure = self._failure_kind(exc)
            message = str(exc) or "Failed to send message."
            logger.error(
                "Send failed",
                extra={
                    "session_id": self._current_session_id,
                    "failure": failure.value,
                    "error": message,
                },
            )
            self._emit(ChangeKind.ERROR, message=message, failure=failure)
        finally:
            self._release_send(token)

    def _release_send(self, token: CancellationToken) -> None:
        if self._send_token is not token:
            return
        self._send_token = None
        self._sending = False
        self._emit(ChangeKind.LOADING)

    @staticmethod
    def _failure_kind(exc: Exception) -> FailureKind:
        if isinstance(exc, (SearchApiTimeoutError, TimeoutError)):
            return FailureKind.TIMEOUT
        return FailureKind.TRANSPORT

    def _next_user_entry_id(self, created: datetime) -> str:
        return f"user-{int(created.timestamp() * 1000)}-{next(self._entry_counter)}"

    # ------------------------------------------------------------------
    # Citations
    def resolve_citation(self, entry_id: str, number: int) -> Reference | None:
        """Return reference ``number`` of entry ``entry_id`` or ``None``."""

        entry = self._store.find(entry_id)
        if entry is None:
            return None
        return resolve_citation(entry.references, number)

    def linked_segments(self, entry: TranscriptEntry) -> list[Segment]:
        return link_citations(entry.content, entry.references)


__all__ = [
    "ChangeKind",
    "ControllerEvent",
    "ControllerListener",
    "FailureKind",
    "RejectionReason",
    "SearchBackend",
    "SessionController",
    "TaskRunner",
    "build_payload",
]
