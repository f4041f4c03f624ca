"""Entry point for launching the PaperChat desktop client."""

from __future__ import annotations

import sys

from PyQt6.QtWidgets import QApplication

from .config import load_client_settings
from .logging import install_exception_hook, setup_logging
from .services.facet_catalog import FacetCatalog
from .services.qt_task_runner import QtTaskRunner
from .services.search_api_client import SearchApiClient
from .services.session_controller import SessionController
from .ui import MainWindow


def main() -> None:
    """Start the PyQt6 application."""
    logger = setup_logging()
    install_exception_hook(logger)
    logger.debug("Starting QApplication")

    app = QApplication(sys.argv)
    app.setApplicationName("PaperChat")

    settings = load_client_settings()
    logger.info(
        "Initialising core services",
        extra={"base_url": settings.base_url, "timeout": settings.request_timeout},
    )
    runner = QtTaskRunner()
    api_client = SearchApiClient.from_settings(settings)
    controller = SessionController(
        api_client,
        user_id=settings.user_id,
        runner=runner,
        session_limit=settings.session_limit,
    )
    catalog = FacetCatalog(api_client, user_id=settings.user_id, runner=runner)

    window = MainWindow(controller, catalog=catalog)
    window.show()
    logger.info("Main window shown")

    controller.refresh_session_list()

    logger.info("Application started")
    exit_code = app.exec()
    logger.info("Application event loop exited", extra={"exit_code": exit_code})
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
