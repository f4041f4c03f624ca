"""Main window for the PaperChat desktop client."""

from __future__ import annotations

import logging

from PyQt6.QtCore import QEasingCurve, QPropertyAnimation, Qt, QTimer
from PyQt6.QtGui import QCloseEvent, QKeySequence, QShortcut
from PyQt6.QtWidgets import (
    QDialog,
    QFrame,
    QHBoxLayout,
    QLabel,
    QMainWindow,
    QSplitter,
    QVBoxLayout,
    QWidget,
)

from ..services.facet_catalog import FacetCatalog
from ..services.filters import active_filter_count
from ..services.session_controller import ChangeKind, ControllerEvent, SessionController
from .chat_view import ChatView
from .filter_dialog import FilterDialog
from .input_panel import InputPanel
from .session_sidebar import SessionSidebar


LOGGER = logging.getLogger(__name__)

TOAST_DURATION_MS = 4000


class ToastWidget(QFrame):
    """Transient toast notification overlay."""

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent, Qt.WindowType.ToolTip)
        self.setObjectName("toast")
        self.setWindowFlag(Qt.WindowType.FramelessWindowHint)
        self._label = QLabel(self)
        self._label.setWordWrap(True)
        self._label.setMaximumWidth(360)
        layout = QHBoxLayout(self)
        layout.setContentsMargins(12, 8, 12, 8)
        layout.addWidget(self._label)
        self._animation = QPropertyAnimation(self, b"windowOpacity", self)
        self._animation.setDuration(250)
        self._animation.setEasingCurve(QEasingCurve.Type.InOutQuad)
        self._hide_timer = QTimer(self)
        self._hide_timer.setSingleShot(True)
        self._hide_timer.timeout.connect(self._fade_out)

    @property
    def message(self) -> str:
        return self._label.text()

    def show_message(
        self, message: str, level: str = "info", duration_ms: int = TOAST_DURATION_MS
    ) -> None:
        palette = self.palette()
        if level == "error":
            palette.setColor(palette.ColorRole.Window, Qt.GlobalColor.darkRed)
            palette.setColor(palette.ColorRole.WindowText, Qt.GlobalColor.white)
        elif level == "warning":
            palette.setColor(palette.ColorRole.Window, Qt.GlobalColor.darkYellow)
            palette.setColor(palette.ColorRole.WindowText, Qt.GlobalColor.black)
        else:
            palette.setColor(palette.ColorRole.Window, Qt.GlobalColor.black)
            palette.setColor(palette.ColorRole.WindowText, Qt.GlobalColor.white)
        self.setPalette(palette)
        self.setAutoFillBackground(True)
        self._label.setText(message)
        self.adjustSize()
        parent = self.parentWidget()
        if parent:
            margin = 24
            geo = parent.geometry()
            self.move(geo.right() - self.width() - margin, geo.top() + margin)
        self.setWindowOpacity(0.0)
        self.show()
        self.raise_()
        self._animation.stop()
        try:
            self._animation.finished.disconnect(self.hide)
        except TypeError:
            pass
        self._animation.setStartValue(0.0)
        self._animation.setEndValue(1.0)
        self._animation.start()
        self._hide_timer.start(duration_ms)

    def _fade_out(self) -> None:
        self._animation.stop()
        self._animation.setStartValue(1.0)
        self._animation.setEndValue(0.0)
        try:
            self._animation.finished.disconnect(self.hide)
        except TypeError:
            pass
        self._animation.finished.connect(self.hide)
        self._animation.start()


class MainWindow(QMainWindow):
    """Sidebar, transcript and input panel wired to a :class:`SessionController`."""

    def __init__(
        self,
        controller: SessionController,
        *,
        catalog: FacetCatalog | None = None,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self.controller = controller
        self.catalog = catalog
        self.setWindowTitle("PaperChat")
        self.resize(1200, 800)

        self.sidebar = SessionSidebar(self)
        self.chat_view = ChatView(self)
        self.input_panel = InputPanel(self)
        self.toast = ToastWidget(self)
        self.toast.hide()

        conversation = QWidget(self)
        conversation_layout = QVBoxLayout(conversation)
        conversation_layout.setContentsMargins(0, 0, 0, 0)
        conversation_layout.setSpacing(0)
        conversation_layout.addWidget(self.chat_view, 1)
        conversation_layout.addWidget(self.input_panel)

        self.splitter = QSplitter(Qt.Orientation.Horizontal, self)
        self.splitter.addWidget(self.sidebar)
        self.splitter.addWidget(conversation)
        self.splitter.setStretchFactor(0, 0)
        self.splitter.setStretchFactor(1, 1)
        self.splitter.setSizes([280, 920])
        self.setCentralWidget(self.splitter)

        self.sidebar.session_selected.connect(self._on_session_selected)
        self.sidebar.new_chat_requested.connect(self._on_new_chat)
        self.chat_view.document_toggled.connect(self._on_document_toggled)
        self.input_panel.send_requested.connect(self._on_send_requested)
        self.input_panel.filters_requested.connect(self.open_filter_dialog)
        self.input_panel.document_removed.connect(self.controller.remove_document)

        self._sidebar_shortcut = QShortcut(QKeySequence("Ctrl+B"), self)
        self._sidebar_shortcut.activated.connect(self.toggle_sidebar)
        self._cancel_shortcut = QShortcut(QKeySequence(Qt.Key.Key_Escape), self)
        self._cancel_shortcut.activated.connect(self._on_cancel_requested)

        self._unsubscribe = self.controller.add_listener(self._on_controller_event)
        self._sync_all()

    # ------------------------------------------------------------------
    def toggle_sidebar(self) -> None:
        visible = not self.sidebar.isVisible()
        self.sidebar.setVisible(visible)
        LOGGER.debug("Sidebar toggled", extra={"visible": visible})

    def show_toast(self, message: str, level: str = "info") -> None:
        self.toast.show_message(message, level)

    def open_filter_dialog(self) -> None:
        dialog = FilterDialog(self.controller.active_filters, catalog=self.catalog, parent=self)
        if dialog.exec() == QDialog.DialogCode.Accepted:
            self.controller.update_filters(dialog.filters())

    # ------------------------------------------------------------------
    def _on_controller_event(self, event: ControllerEvent) -> None:
        kind = event.kind
        if kind is ChangeKind.TRANSCRIPT:
            self.chat_view.set_transcript(
                self.controller.transcript,
                selected_ids=self.controller.working_set.ids(),
            )
            self.chat_view.apply_reveal(event.reveal)
        elif kind is ChangeKind.SESSIONS:
            self.sidebar.set_sessions(self.controller.sessions)
        elif kind is ChangeKind.SESSION:
            self.sidebar.set_current_session(self.controller.current_session_id)
        elif kind is ChangeKind.WORKING_SET:
            self._sync_working_set()
        elif kind is ChangeKind.FILTERS:
            self.input_panel.set_filter_count(active_filter_count(self.controller.active_filters))
        elif kind is ChangeKind.LOADING:
            self._sync_loading()
        elif kind is ChangeKind.ERROR and event.message:
            self.show_toast(event.message, "error")

    def _sync_all(self) -> None:
        self.sidebar.set_sessions(self.controller.sessions)
        self.sidebar.set_current_session(self.controller.current_session_id)
        self.chat_view.set_transcript(
            self.controller.transcript, selected_ids=self.controller.working_set.ids()
        )
        self._sync_working_set()
        self.input_panel.set_filter_count(active_filter_count(self.controller.active_filters))
        self._sync_loading()

    def _sync_working_set(self) -> None:
        working_set = self.controller.working_set
        self.input_panel.set_documents(working_set)
        self.chat_view.sync_selection(working_set.ids())

    def _sync_loading(self) -> None:
        sending = self.controller.sending
        self.sidebar.set_loading(self.controller.sessions_loading)
        self.sidebar.set_interactive(not sending)
        self.chat_view.set_loading(self.controller.session_loading)
        self.chat_view.set_typing(sending)
        self.input_panel.set_busy(sending or self.controller.session_loading)

    def _on_send_requested(self, text: str) -> None:
        if self.controller.send_query(text):
            self.input_panel.commit_sent(text)

    def _on_session_selected(self, session_id) -> None:
        self.controller.select_session(session_id)

    def _on_new_chat(self) -> None:
        self.controller.start_new_chat()

    def _on_document_toggled(self, paper_id: str, title: str) -> None:
        self.controller.toggle_document(paper_id, title)

    def _on_cancel_requested(self) -> None:
        if self.controller.cancel_send():
            self.show_toast("Request cancelled", "warning")

    # ------------------------------------------------------------------
    def closeEvent(self, event: QCloseEvent) -> None:  # type: ignore[override]
        unsubscribe = getattr(self, "_unsubscribe", None)
        if unsubscribe is not None:
            unsubscribe()
            self._unsubscribe = None
        super().closeEvent(event)


__all__ = ["MainWindow", "ToastWidget"]
