import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from paperchat.services.citation_linker import (
    CITATION_EMPHASIS_MS,
    CitationSegment,
    TextSegment,
    link_citations,
    resolve_citation,
)
from paperchat.services.models import Reference


def _refs(*titles: str) -> list[Reference]:
    return [
        Reference(rank=10 - index, paper_id=f"p{index}", title=title)
        for index, title in enumerate(titles)
    ]


def test_markers_resolve_positionally_and_out_of_range_is_literal() -> None:
    references = _refs("A", "B", "C")

    segments = link_citations("See [1] and [3]. Also [5].", references)

    navigable = [
        segment
        for segment in segments
        if isinstance(segment, CitationSegment) and segment.navigable
    ]
    assert [segment.reference.title for segment in navigable] == ["A", "C"]
    unresolved = [
        segment
        for segment in segments
        if isinstance(segment, CitationSegment) and not segment.navigable
    ]
    assert len(unresolved) == 1
    assert unresolved[0].text == "[5]"
    assert unresolved[0].reference is None


def test_text_outside_markers_is_unchanged() -> None:
    text = "Alpha [2] beta [x] gamma [] [1]"

    segments = link_citations(text, _refs("A", "B"))

    assert "".join(segment.text for segment in segments) == text
    assert segments[0] == TextSegment("Alpha ")


def test_rank_and_paper_id_are_ignored_when_linking() -> None:
    references = [
        Reference(rank=3, paper_id="2", title="first"),
        Reference(rank=1, paper_id="1", title="second"),
    ]

    segments = link_citations("[1]", references)

    assert segments == [CitationSegment(number=1, text="[1]", reference=references[0])]


def test_marker_zero_and_empty_reference_list_do_not_resolve() -> None:
    segments = link_citations("[0] and [1]", [])

    assert all(segment.reference is None for segment in segments if isinstance(segment, CitationSegment))
    assert resolve_citation([], 1) is None
    assert resolve_citation(_refs("A"), 0) is None


def test_text_without_markers_is_single_segment() -> None:
    assert link_citations("plain", _refs("A")) == [TextSegment("plain")]
    assert link_citations("", _refs("A")) == []


def test_emphasis_interval_is_two_seconds() -> None:
    assert CITATION_EMPHASIS_MS == 2000
