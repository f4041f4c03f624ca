"""Sidebar listing stored sessions."""

from __future__ import annotations

from typing import Sequence

from PyQt6.QtCore import Qt, pyqtSignal
from PyQt6.QtWidgets import (
    QFrame,
    QLabel,
    QListWidget,
    QListWidgetItem,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from ..services.models import Session, SessionId
from .message_widgets import format_timestamp


APP_TITLE = "PaperChat"
LOADING_TEXT = "Loading sessions…"
EMPTY_TEXT = "No sessions yet.\nStart a new chat to create one."


class SessionSidebar(QFrame):
    """Session list with a "New chat" action and loading/empty states."""

    session_selected = pyqtSignal(object)
    new_chat_requested = pyqtSignal()

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setObjectName("sessionSidebar")
        self.setMinimumWidth(220)
        self._sessions: list[Session] = []
        self._current: SessionId | None = None
        self._loading = False

        layout = QVBoxLayout(self)
        layout.setContentsMargins(12, 12, 12, 12)
        layout.setSpacing(8)

        title = QLabel(APP_TITLE, self)
        title.setObjectName("sidebarTitle")
        layout.addWidget(title)

        self.new_chat_button = QPushButton("New chat", self)
        self.new_chat_button.clicked.connect(lambda: self.new_chat_requested.emit())
        layout.addWidget(self.new_chat_button)

        self.status_label = QLabel("", self)
        self.status_label.setObjectName("sidebarStatus")
        self.status_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.status_label.setWordWrap(True)
        layout.addWidget(self.status_label)

        self.list_widget = QListWidget(self)
        self.list_widget.itemClicked.connect(self._on_item_clicked)
        layout.addWidget(self.list_widget, 1)

        self._refresh_state()

    # ------------------------------------------------------------------
    @property
    def status_text(self) -> str | None:
        return self.status_label.text() if not self.status_label.isHidden() else None

    def set_sessions(self, sessions: Sequence[Session]) -> None:
        self._sessions = list(sessions)
        self.list_widget.clear()
        for session in self._sessions:
            timestamp = format_timestamp(session.updated_at or session.created_at)
            label = session.display_title
            if timestamp:
                label = f"{label}\n{timestamp}"
            item = QListWidgetItem(label)
            item.setData(Qt.ItemDataRole.UserRole, session.id)
            item.setToolTip(session.display_title)
            self.list_widget.addItem(item)
        self._highlight_current()
        self._refresh_state()

    def set_current_session(self, session_id: SessionId | None) -> None:
        self._current = session_id
        self._highlight_current()

    def set_loading(self, loading: bool) -> None:
        self._loading = loading
        self._refresh_state()

    def set_interactive(self, enabled: bool) -> None:
        self.new_chat_button.setEnabled(enabled)
        self.list_widget.setEnabled(enabled)

    # ------------------------------------------------------------------
    def _highlight_current(self) -> None:
        self.list_widget.blockSignals(True)
        self.list_widget.clearSelection()
        for row in range(self.list_widget.count()):
            item = self.list_widget.item(row)
            if self._current is not None and item.data(Qt.ItemDataRole.UserRole) == self._current:
                item.setSelected(True)
                self.list_widget.setCurrentItem(item)
        self.list_widget.blockSignals(False)

    def _refresh_state(self) -> None:
        if self._loading:
            self.status_label.setText(LOADING_TEXT)
            self.status_label.setVisible(True)
            self.list_widget.setVisible(False)
        elif not self._sessions:
            self.status_label.setText(EMPTY_TEXT)
            self.status_label.setVisible(True)
            self.list_widget.setVisible(False)
        else:
            self.status_label.setVisible(False)
            self.list_widget.setVisible(True)

    def _on_item_clicked(self, item: QListWidgetItem) -> None:
        self.session_selected.emit(item.data(Qt.ItemDataRole.UserRole))


__all__ = ["SessionSidebar"]
