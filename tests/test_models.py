import sys
from datetime import timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from paperchat.services.models import (
    MalformedPayloadError,
    QueryResponse,
    Reference,
    Role,
    Session,
    SessionDetail,
    WorkingSet,
    parse_timestamp,
)


def test_session_detail_coerces_message_ids_to_strings() -> None:
    detail = SessionDetail.from_api(
        {
            "id": 7,
            "title": "Rice yields",
            "messages": [
                {"id": 11, "role": "user", "content": "Q", "created_at": "2024-01-02T03:04:05Z"},
                {
                    "id": 12,
                    "role": "assistant",
                    "content": "A [1]",
                    "references": [{"paper_id": 99, "title": "Paper"}],
                },
            ],
        }
    )

    assert [message.id for message in detail.messages] == ["11", "12"]
    assert detail.messages[0].role is Role.USER
    assert detail.messages[0].created_at.tzinfo == timezone.utc
    assert detail.messages[0].references == ()
    reference = detail.messages[1].references[0]
    assert reference.paper_id == "99"
    assert reference.rank == 1


def test_query_response_defaults_missing_references_to_empty() -> None:
    response = QueryResponse.from_api(
        {"session_id": 3, "message_id": 40, "ai_response": "Hello", "references": None}
    )

    assert response.references == ()
    assert response.metadata == {}


def test_query_response_requires_session_id() -> None:
    with pytest.raises(MalformedPayloadError):
        QueryResponse.from_api({"message_id": 1, "ai_response": "x"})


def test_query_response_requires_message_id() -> None:
    with pytest.raises(MalformedPayloadError, match="message_id"):
        QueryResponse.from_api({"session_id": 3, "ai_response": "x"})


def test_reference_fields_are_parsed() -> None:
    reference = Reference.from_api(
        {
            "rank": 2,
            "paper_id": "abc",
            "title": "Soil",
            "authors": "Sari",
            "year": "2019",
            "type": "Tesis",
            "faculty": "Agriculture",
            "department": "",
            "abstract": "Long text",
            "url": "https://example.org/abc",
            "relevance_score": "0.75",
        }
    )

    assert reference.rank == 2
    assert reference.year == 2019
    assert reference.department is None
    assert reference.relevance_score == pytest.approx(0.75)


def test_unknown_role_is_rejected() -> None:
    with pytest.raises(MalformedPayloadError):
        Role.parse("system")


def test_session_title_fallback() -> None:
    session = Session.from_api({"id": 1, "title": "  ", "updated_at": "2024-05-01T10:00:00"})

    assert session.display_title == "Untitled chat"
    assert session.updated_at is not None


def test_parse_timestamp_handles_garbage() -> None:
    assert parse_timestamp("not a date") is None
    assert parse_timestamp(None) is None


def test_working_set_toggle_semantics() -> None:
    working_set = WorkingSet()

    for index in range(5):
        assert working_set.toggle(f"p{index}", f"Title {index}") is True

    assert len(working_set) == 5
    assert {document.id: document.title for document in working_set}["p3"] == "Title 3"
    assert working_set.ids() == ["p0", "p1", "p2", "p3", "p4"]

    assert working_set.toggle("p3", "ignored") is False
    assert "p3" not in working_set
    assert working_set.toggle("p3", "Title 3") is True
    assert working_set.ids()[-1] == "p3"


def test_working_set_remove_and_clear() -> None:
    working_set = WorkingSet()
    working_set.toggle("a", "A")

    assert working_set.remove("a") is True
    assert working_set.remove("a") is False
    assert not working_set

    working_set.toggle("b", "B")
    working_set.clear()
    assert len(working_set) == 0
