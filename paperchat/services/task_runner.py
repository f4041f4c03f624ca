"""Execution of blocking backend calls on behalf of the controller."""

from __future__ import annotations

import threading
from typing import Any, Callable, TypeVar


T = TypeVar("T")

SuccessCallback = Callable[[Any], None]
ErrorCallback = Callable[[Exception], None]


class CancellationToken:
    """Flag shared between a request and whoever may abandon it."""

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()


class InlineTaskRunner:
    """Run tasks synchronously on the calling thread.

    Used by headless callers and tests. Completion callbacks fire before
    :meth:`submit` returns. A task's exception is routed to ``on_error``;
    exceptions raised by the callbacks themselves propagate.
    """

    def submit(
        self,
        task: Callable[[], T],
        *,
        on_success: Callable[[T], None],
        on_error: ErrorCallback,
    ) -> None:
        try:
            result = task()
        except Exception as exc:
            on_error(exc)
            return
        on_success(result)


__all__ = [
    "CancellationToken",
    "ErrorCallback",
    "InlineTaskRunner",
    "SuccessCallback",
]
