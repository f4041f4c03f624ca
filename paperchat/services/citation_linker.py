"""Split assistant text into plain runs and positional citation markers."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence, Union

from .models import Reference

CITATION_RE = re.compile(r"\[(\d+)\]")

#: How long a revealed reference stays emphasised, in milliseconds.
CITATION_EMPHASIS_MS = 2000


@dataclass(frozen=True)
class TextSegment:
    text: str


@dataclass(frozen=True)
class CitationSegment:
    """An inline ``[n]`` marker.

    ``reference`` is the n-th entry of the owning message's reference list,
    or ``None`` when ``n`` is out of range. Unresolved markers render as
    their literal text and revealing them does nothing.
    """

    number: int
    text: str
    reference: Reference | None = None

    @property
    def navigable(self) -> bool:
        return self.reference is not None


Segment = Union[TextSegment, CitationSegment]


def resolve_citation(references: Sequence[Reference], number: int) -> Reference | None:
    """Return the reference at 1-based ``number`` or ``None``."""

    if number < 1 or number > len(references):
        return None
    return references[number - 1]


def link_citations(text: str, references: Sequence[Reference]) -> list[Segment]:
    """Return ``text`` as segments with each ``[n]`` resolved positionally.

    Numbering is the marker's position in ``references``, never the
    reference's ``rank`` or ``paper_id``. Concatenating every segment's
    text reproduces ``text`` exactly.
    """

    segments: list[Segment] = []
    last_index = 0
    for match in CITATION_RE.finditer(text):
        if match.start() > last_index:
            segments.append(TextSegment(text[last_index:match.start()]))
        number = int(match.group(1))
        segments.append(
            CitationSegment(
                number=number,
                text=match.group(0),
                reference=resolve_citation(references, number),
            )
        )
        last_index = match.end()
    if last_index < len(text):
        segments.append(TextSegment(text[last_index:]))
    return segments


__all__ = [
    "CITATION_EMPHASIS_MS",
    "CITATION_RE",
    "CitationSegment",
    "Segment",
    "TextSegment",
    "link_citations",
    "resolve_citation",
]
