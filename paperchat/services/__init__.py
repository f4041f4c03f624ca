"""Conversation services for the PaperChat client."""

from .citation_linker import (
    CITATION_EMPHASIS_MS,
    CitationSegment,
    TextSegment,
    link_citations,
    resolve_citation,
)
from .facet_catalog import FacetCatalog
from .filters import (
    DOCUMENT_TYPES,
    EMPTY_FILTERS,
    ActiveFilters,
    YearRange,
    active_filter_count,
    compile_filters,
    year_choices,
)
from .message_store import MessageStore
from .models import (
    MalformedPayloadError,
    QueryResponse,
    Reference,
    Role,
    SelectedDocument,
    Session,
    SessionDetail,
    TranscriptEntry,
    WorkingSet,
)
from .scroll_targeter import RevealDirective, RevealTarget, ScrollTargeter, compute_reveal
from .search_api_client import (
    SearchApiClient,
    SearchApiConnectionError,
    SearchApiError,
    SearchApiResponseError,
    SearchApiTimeoutError,
)
from .session_controller import (
    ChangeKind,
    ControllerEvent,
    FailureKind,
    RejectionReason,
    SessionController,
    build_payload,
)
from .task_runner import CancellationToken, InlineTaskRunner

__all__ = [
    "ActiveFilters",
    "CITATION_EMPHASIS_MS",
    "CancellationToken",
    "ChangeKind",
    "CitationSegment",
    "ControllerEvent",
    "DOCUMENT_TYPES",
    "EMPTY_FILTERS",
    "FacetCatalog",
    "FailureKind",
    "InlineTaskRunner",
    "MalformedPayloadError",
    "MessageStore",
    "QueryResponse",
    "Reference",
    "RejectionReason",
    "RevealDirective",
    "RevealTarget",
    "Role",
    "ScrollTargeter",
    "SearchApiClient",
    "SearchApiConnectionError",
    "SearchApiError",
    "SearchApiResponseError",
    "SearchApiTimeoutError",
    "SelectedDocument",
    "Session",
    "SessionController",
    "SessionDetail",
    "TextSegment",
    "TranscriptEntry",
    "WorkingSet",
    "YearRange",
    "active_filter_count",
    "build_payload",
    "compile_filters",
    "compute_reveal",
    "link_citations",
    "resolve_citation",
    "year_choices",
]

# The threaded runner requires PyQt6. It is imported lazily to avoid import
# errors when the runtime environment lacks Qt libraries.
try:  # pragma: no cover - optional dependency guard
    from .qt_task_runner import QtTaskRunner
except ImportError:  # pragma: no cover
    QtTaskRunner = None  # type: ignore[assignment]
else:  # pragma: no cover - executed when Qt is available
    __all__.append("QtTaskRunner")
