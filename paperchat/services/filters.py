"""Facet filters and their compilation into query payload fields."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any

DOCUMENT_TYPES: tuple[str, ...] = ("Skripsi", "Tesis", "Disertasi", "Jurnal")
YEAR_CHOICE_COUNT = 30


@dataclass(frozen=True)
class YearRange:
    """Inclusive publication-year bounds; either side may be open."""

    start: int | None = None
    end: int | None = None

    @property
    def is_set(self) -> bool:
        return self.start is not None or self.end is not None


@dataclass(frozen=True)
class ActiveFilters:
    """Facet selection applied to outgoing queries."""

    faculty: str | None = None
    department: str | None = None
    document_type: str | None = None
    year: int | None = None
    year_range: YearRange = field(default_factory=YearRange)

    @property
    def uses_year_range(self) -> bool:
        return self.year_range.is_set

    def with_year(self, year: int | None) -> "ActiveFilters":
        """Switch to single-year mode, dropping any range."""

        return replace(self, year=year, year_range=YearRange())

    def with_year_range(self, start: int | None, end: int | None) -> "ActiveFilters":
        """Switch to range mode, dropping any single year."""

        return replace(self, year=None, year_range=YearRange(start, end))


EMPTY_FILTERS = ActiveFilters()


def current_year() -> int:
    return date.today().year


def year_choices(*, count: int = YEAR_CHOICE_COUNT, today: date | None = None) -> list[int]:
    """Selectable years, newest first."""

    newest = (today or date.today()).year
    return [newest - offset for offset in range(count)]


def active_filter_count(filters: ActiveFilters) -> int:
    values = (
        filters.faculty,
        filters.department,
        filters.document_type,
        filters.year,
        filters.year_range.start,
        filters.year_range.end,
    )
    return sum(1 for value in values if value is not None)


def compile_filters(
    filters: ActiveFilters, *, this_year: int | None = None
) -> dict[str, Any]:
    """Return the payload fragment for ``filters``.

    Only facets that are set appear in the result. A year range with at
    least one bound wins over a single year; open bounds are closed with
    ``0`` and the current year. ``year`` and ``year_range`` are never both
    emitted.
    """

    fragment: dict[str, Any] = {}
    if filters.faculty is not None:
        fragment["faculty"] = filters.faculty
    if filters.department is not None:
        fragment["department"] = filters.department
    if filters.document_type is not None:
        fragment["document_type"] = filters.document_type

    year_range = filters.year_range
    if year_range.is_set:
        fragment["year_range"] = {
            "start": year_range.start if year_range.start is not None else 0,
            "end": (
                year_range.end
                if year_range.end is not None
                else (this_year if this_year is not None else current_year())
            ),
        }
    elif filters.year is not None:
        fragment["year"] = filters.year
    return fragment


__all__ = [
    "ActiveFilters",
    "DOCUMENT_TYPES",
    "EMPTY_FILTERS",
    "YearRange",
    "active_filter_count",
    "compile_filters",
    "current_year",
    "year_choices",
]
