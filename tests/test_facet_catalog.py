from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from paperchat.services.facet_catalog import FacetCatalog
from paperchat.services.search_api_client import SearchApiConnectionError


class CountingSource:
    def __init__(self) -> None:
        self.calls: list[str] = []
        self.fail = False

    def list_faculties(self, user_id: str) -> list[str]:
        self.calls.append(f"faculties:{user_id}")
        if self.fail:
            raise SearchApiConnectionError("offline")
        return ["Agriculture", "Forestry"]

    def list_departments(self, user_id: str) -> list[str]:
        self.calls.append(f"departments:{user_id}")
        return ["Agronomy"]


def test_values_are_fetched_once_and_cached() -> None:
    source = CountingSource()
    catalog = FacetCatalog(source, user_id="u1")
    received: list[list[str]] = []

    catalog.faculties(received.append)
    catalog.faculties(received.append)
    catalog.departments(received.append)

    assert received == [["Agriculture", "Forestry"], ["Agriculture", "Forestry"], ["Agronomy"]]
    assert source.calls == ["faculties:u1", "departments:u1"]


def test_failure_yields_empty_list_and_retries_next_time() -> None:
    source = CountingSource()
    source.fail = True
    catalog = FacetCatalog(source, user_id="u1")
    received: list[list[str]] = []

    catalog.faculties(received.append)
    assert received == [[]]

    source.fail = False
    catalog.faculties(received.append)
    assert received[-1] == ["Agriculture", "Forestry"]

