import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from paperchat.services.filters import (
    DOCUMENT_TYPES,
    EMPTY_FILTERS,
    ActiveFilters,
    YearRange,
    active_filter_count,
    compile_filters,
    year_choices,
)


def test_empty_filters_compile_to_empty_fragment() -> None:
    assert compile_filters(EMPTY_FILTERS) == {}


def test_single_year_is_emitted_when_range_is_unset() -> None:
    filters = ActiveFilters(year=2020, year_range=YearRange(None, None))

    fragment = compile_filters(filters)

    assert fragment == {"year": 2020}
    assert "year_range" not in fragment


def test_range_with_start_only_wins_over_year_and_closes_with_current_year() -> None:
    filters = ActiveFilters(year=2020, year_range=YearRange(start=2015, end=None))

    fragment = compile_filters(filters, this_year=2031)

    assert fragment == {"year_range": {"start": 2015, "end": 2031}}
    assert "year" not in fragment


def test_range_with_end_only_opens_start_at_zero() -> None:
    fragment = compile_filters(ActiveFilters(year_range=YearRange(end=2010)))

    assert fragment == {"year_range": {"start": 0, "end": 2010}}


def test_open_range_end_defaults_to_todays_year() -> None:
    fragment = compile_filters(ActiveFilters(year_range=YearRange(start=2000)))

    assert fragment["year_range"]["end"] == date.today().year


def test_only_present_facets_are_included() -> None:
    filters = ActiveFilters(faculty="Engineering", document_type="Tesis")

    assert compile_filters(filters) == {"faculty": "Engineering", "document_type": "Tesis"}


def test_year_zero_counts_as_set() -> None:
    filters = ActiveFilters(year_range=YearRange(start=0, end=None))

    assert compile_filters(filters, this_year=2024) == {"year_range": {"start": 0, "end": 2024}}


def test_mode_switches_clear_the_other_year_selection() -> None:
    ranged = ActiveFilters(year=2019).with_year_range(2010, 2012)
    assert ranged.year is None
    assert ranged.year_range == YearRange(2010, 2012)

    single = ranged.with_year(2018)
    assert single.year == 2018
    assert not single.uses_year_range


def test_active_filter_count_counts_each_non_null_value() -> None:
    filters = ActiveFilters(
        faculty="Agriculture",
        department="Agronomy",
        year_range=YearRange(start=2001, end=2005),
    )

    assert active_filter_count(filters) == 4
    assert active_filter_count(EMPTY_FILTERS) == 0


def test_year_choices_are_thirty_years_descending() -> None:
    choices = year_choices(today=date(2024, 6, 1))

    assert len(choices) == 30
    assert choices[0] == 2024
    assert choices[-1] == 1995
    assert choices == sorted(choices, reverse=True)


def test_document_types_catalogue() -> None:
    assert DOCUMENT_TYPES == ("Skripsi", "Tesis", "Disertasi", "Jurnal")
