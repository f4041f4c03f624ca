"""Data objects exchanged between the backend, the controller and the UI."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Union


logger = logging.getLogger(__name__)

#: Server-assigned session identifier. The client never fabricates one.
SessionId = Union[int, str]


class MalformedPayloadError(ValueError):
    """Raised when a backend payload is missing required fields."""


class Role(Enum):
    """Author of a transcript entry."""

    USER = "user"
    ASSISTANT = "assistant"

    @classmethod
    def parse(cls, value: Any) -> "Role":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise MalformedPayloadError(f"Unknown message role: {value!r}") from None


def parse_timestamp(value: Any) -> datetime | None:
    """Parse ISO-8601 timestamps as sent by the backend."""

    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unparseable timestamp", extra={"value": value})
        return None


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _require_mapping(data: Any, kind: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise MalformedPayloadError(f"{kind} payload must be an object")
    return data


@dataclass(frozen=True)
class Reference:
    """A retrieved document cited by an assistant entry."""

    rank: int
    paper_id: str
    title: str
    authors: str = ""
    year: int | None = None
    type: str | None = None
    faculty: str | None = None
    department: str | None = None
    abstract: str = ""
    keywords: str | None = None
    url: str = ""
    relevance_score: float = 0.0

    @classmethod
    def from_api(cls, data: Any, *, position: int = 0) -> "Reference":
        payload = _require_mapping(data, "Reference")
        paper_id = payload.get("paper_id")
        if paper_id is None:
            raise MalformedPayloadError("Reference is missing paper_id")
        rank = _optional_int(payload.get("rank"))
        return cls(
            rank=rank if rank is not None else position + 1,
            paper_id=str(paper_id),
            title=str(payload.get("title") or ""),
            authors=str(payload.get("authors") or ""),
            year=_optional_int(payload.get("year")),
            type=_optional_str(payload.get("type")),
            faculty=_optional_str(payload.get("faculty")),
            department=_optional_str(payload.get("department")),
            abstract=str(payload.get("abstract") or ""),
            keywords=_optional_str(payload.get("keywords")),
            url=str(payload.get("url") or ""),
            relevance_score=_float(payload.get("relevance_score")),
        )

    @classmethod
    def list_from_api(cls, data: Any) -> tuple["Reference", ...]:
        if data is None:
            return ()
        if not isinstance(data, list):
            raise MalformedPayloadError("references must be a list")
        return tuple(cls.from_api(item, position=index) for index, item in enumerate(data))


@dataclass(frozen=True)
class TranscriptEntry:
    """One message in the active conversation."""

    id: str
    role: Role
    content: str
    created_at: datetime | None = None
    references: tuple[Reference, ...] = ()

    @property
    def is_user(self) -> bool:
        return self.role is Role.USER

    @property
    def is_assistant(self) -> bool:
        return self.role is Role.ASSISTANT

    @classmethod
    def from_api(cls, data: Any) -> "TranscriptEntry":
        payload = _require_mapping(data, "Message")
        raw_id = payload.get("id")
        if raw_id is None:
            raise MalformedPayloadError("Message is missing id")
        return cls(
            # server ids are numeric; the transcript keys everything by string
            id=str(raw_id),
            role=Role.parse(payload.get("role")),
            content=str(payload.get("content") or ""),
            created_at=parse_timestamp(payload.get("created_at")),
            references=Reference.list_from_api(payload.get("references")),
        )


@dataclass(frozen=True)
class Session:
    """A persisted, server-identified conversation."""

    id: SessionId
    title: str = ""
    username: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def display_title(self) -> str:
        return self.title.strip() or "Untitled chat"

    @classmethod
    def from_api(cls, data: Any) -> "Session":
        payload = _require_mapping(data, "Session")
        session_id = payload.get("id")
        if session_id is None:
            raise MalformedPayloadError("Session is missing id")
        return cls(
            id=session_id,
            title=str(payload.get("title") or ""),
            username=_optional_str(payload.get("username")),
            created_at=parse_timestamp(payload.get("created_at")),
            updated_at=parse_timestamp(payload.get("updated_at")),
        )


@dataclass(frozen=True)
class SessionDetail:
    """Full transcript of a stored session."""

    id: SessionId
    title: str
    messages: tuple[TranscriptEntry, ...] = ()

    @classmethod
    def from_api(cls, data: Any) -> "SessionDetail":
        payload = _require_mapping(data, "Session detail")
        messages = payload.get("messages") or []
        if not isinstance(messages, list):
            raise MalformedPayloadError("messages must be a list")
        return cls(
            id=payload.get("id"),
            title=str(payload.get("title") or ""),
            messages=tuple(TranscriptEntry.from_api(item) for item in messages),
        )


@dataclass(frozen=True)
class QueryResponse:
    """Backend answer to a submitted query."""

    session_id: SessionId
    message_id: SessionId
    ai_response: str
    references: tuple[Reference, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Any) -> "QueryResponse":
        payload = _require_mapping(data, "Query response")
        session_id = payload.get("session_id")
        if session_id is None:
            raise MalformedPayloadError("Query response is missing session_id")
        message_id = payload.get("message_id")
        if message_id is None:
            raise MalformedPayloadError("Query response is missing message_id")
        metadata = payload.get("metadata")
        return cls(
            session_id=session_id,
            message_id=message_id,
            ai_response=str(payload.get("ai_response") or ""),
            references=Reference.list_from_api(payload.get("references")),
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        )


@dataclass(frozen=True)
class SelectedDocument:
    """A document pinned to the next query."""

    id: str
    title: str


class WorkingSet:
    """Insertion-ordered set of selected documents keyed by ``paper_id``."""

    def __init__(self, documents: Iterable[SelectedDocument] = ()) -> None:
        self._documents: dict[str, SelectedDocument] = {}
        for document in documents:
            self._documents.setdefault(document.id, document)

    def __len__(self) -> int:
        return len(self._documents)

    def __iter__(self) -> Iterator[SelectedDocument]:
        return iter(list(self._documents.values()))

    def __contains__(self, paper_id: object) -> bool:
        return paper_id in self._documents

    def __bool__(self) -> bool:
        return bool(self._documents)

    def ids(self) -> list[str]:
        return list(self._documents)

    def toggle(self, paper_id: str, title: str) -> bool:
        """Flip membership of ``paper_id``; return ``True`` if now selected."""

        if paper_id in self._documents:
            del self._documents[paper_id]
            return False
        self._documents[paper_id] = SelectedDocument(id=paper_id, title=title)
        return True

    def remove(self, paper_id: str) -> bool:
        return self._documents.pop(paper_id, None) is not None

    def clear(self) -> None:
        self._documents.clear()


__all__ = [
    "MalformedPayloadError",
    "QueryResponse",
    "Reference",
    "Role",
    "SelectedDocument",
    "Session",
    "SessionDetail",
    "SessionId",
    "TranscriptEntry",
    "WorkingSet",
    "parse_timestamp",
]
