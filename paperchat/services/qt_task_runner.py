"""Run blocking backend calls on worker threads and report back on the GUI thread."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from PyQt6.QtCore import QObject, pyqtSignal

from ..logging import log_call


logger = logging.getLogger(__name__)


class QtTaskRunner(QObject):
    """Execute each task on a daemon thread.

    Completion is re-emitted through a signal owned by this object, so the
    callbacks run on the thread the runner lives on (normally the GUI
    thread) via a queued connection.
    """

    _completed = pyqtSignal(object, object)

    @log_call(logger=logger)
    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._completed.connect(self._deliver)

    def submit(
        self,
        task: Callable[[], Any],
        *,
        on_success: Callable[[Any], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        def worker() -> None:
            try:
                result = task()
            except Exception as exc:
                logger.debug(
                    "Background task failed",
                    extra={"task": getattr(task, "__name__", repr(task)), "error": str(exc)},
                )
                self._completed.emit(on_error, exc)
            else:
                self._completed.emit(on_success, result)

        threading.Thread(target=worker, daemon=True).start()

    def _deliver(self, callback: Callable[[Any], None], value: Any) -> None:
        callback(value)


__all__ = ["QtTaskRunner"]
