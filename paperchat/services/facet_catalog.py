"""Cached lookups of facet values offered by the filter dialog."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

from .task_runner import InlineTaskRunner


logger = logging.getLogger(__name__)


class FacetSource(Protocol):
    def list_faculties(self, user_id: str) -> list[str]: ...

    def list_departments(self, user_id: str) -> list[str]: ...


class FacetCatalog:
    """Fetch faculty and department names once and remember them.

    Lookups are opaque: a failure is logged and yields an empty list, and
    the next request tries the backend again.
    """

    def __init__(self, api: FacetSource, *, user_id: str, runner=None) -> None:
        self.api = api
        self.user_id = user_id
        self.runner = runner or InlineTaskRunner()
        self._cache: dict[str, list[str]] = {}

    def faculties(self, callback: Callable[[list[str]], None]) -> None:
        self._lookup("faculties", self.api.list_faculties, callback)

    def departments(self, callback: Callable[[list[str]], None]) -> None:
        self._lookup("departments", self.api.list_departments, callback)

    def _lookup(
        self,
        facet: str,
        fetch: Callable[[str], list[str]],
        callback: Callable[[list[str]], None],
    ) -> None:
        if facet in self._cache:
            callback(list(self._cache[facet]))
            return

        def on_success(values: list[str]) -> None:
            self._cache[facet] = list(values)
            logger.debug("Loaded facet values", extra={"facet": facet, "count": len(values)})
            callback(list(values))

        def on_error(exc: Exception) -> None:
            logger.warning("Facet lookup failed", extra={"facet": facet, "error": str(exc)})
            callback([])

        self.runner.submit(lambda: fetch(self.user_id), on_success=on_success, on_error=on_error)


__all__ = ["FacetCatalog", "FacetSource"]
