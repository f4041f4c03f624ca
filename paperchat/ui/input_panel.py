"""Query entry, working-set chips and the filter button."""

from __future__ import annotations

from typing import Iterable

from PyQt6.QtCore import Qt, pyqtSignal
from PyQt6.QtWidgets import (
    QFrame,
    QHBoxLayout,
    QLabel,
    QPushButton,
    QTextEdit,
    QToolButton,
    QVBoxLayout,
    QWidget,
)

from ..services.models import SelectedDocument
from .message_widgets import truncate_text


CHIP_TITLE_LIMIT = 30


class _HistoryTextEdit(QTextEdit):
    """Text edit where Enter submits and Up/Down walk the history."""

    submit_requested = pyqtSignal()
    history_previous_requested = pyqtSignal()
    history_next_requested = pyqtSignal()

    def keyPressEvent(self, event) -> None:  # type: ignore[override]
        key = event.key()
        modifiers = event.modifiers()
        if key in {Qt.Key.Key_Return, Qt.Key.Key_Enter}:
            if modifiers & Qt.KeyboardModifier.ShiftModifier:
                super().keyPressEvent(event)
                return
            event.accept()
            self.submit_requested.emit()
            return
        if key == Qt.Key.Key_Up and modifiers == Qt.KeyboardModifier.NoModifier:
            if self.textCursor().atStart():
                event.accept()
                self.history_previous_requested.emit()
                return
        if key == Qt.Key.Key_Down and modifiers == Qt.KeyboardModifier.NoModifier:
            if self.textCursor().atEnd():
                event.accept()
                self.history_next_requested.emit()
                return
        super().keyPressEvent(event)


class DocumentChip(QFrame):
    """Selected document with a remove button."""

    remove_requested = pyqtSignal(str)

    def __init__(self, document: SelectedDocument, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.document = document
        self.setObjectName("documentChip")
        layout = QHBoxLayout(self)
        layout.setContentsMargins(8, 2, 4, 2)
        layout.setSpacing(4)
        self.label = QLabel(truncate_text(document.title, CHIP_TITLE_LIMIT), self)
        self.label.setToolTip(document.title)
        layout.addWidget(self.label)
        self.remove_button = QToolButton(self)
        self.remove_button.setText("×")
        self.remove_button.setToolTip("Remove from selection")
        self.remove_button.setCursor(Qt.CursorShape.PointingHandCursor)
        self.remove_button.clicked.connect(lambda: self.remove_requested.emit(document.id))
        layout.addWidget(self.remove_button)
        self.setStyleSheet(
            "QFrame#documentChip {border: 1px solid #cbd5e1; border-radius: 10px;"
            " background-color: #f8fafc;}"
        )


class InputPanel(QFrame):
    """Composite widget handling question entry and query scoping."""

    send_requested = pyqtSignal(str)
    filters_requested = pyqtSignal()
    document_removed = pyqtSignal(str)

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setObjectName("inputPanel")
        self._history: list[str] = []
        self._history_index = 0
        self._busy = False
        self._chips: list[DocumentChip] = []

        layout = QVBoxLayout(self)
        layout.setContentsMargins(12, 8, 12, 12)
        layout.setSpacing(6)

        self._chip_row = QHBoxLayout()
        self._chip_row.setSpacing(6)
        self._chip_caption = QLabel("Selected documents:", self)
        self._chip_row.addWidget(self._chip_caption)
        self._chip_row.addStretch(1)
        layout.addLayout(self._chip_row)

        self.editor = _HistoryTextEdit(self)
        self.editor.setAcceptRichText(False)
        self.editor.setPlaceholderText("Ask about documents (Enter to send, Shift+Enter for a new line)")
        self.editor.setFixedHeight(72)
        self.editor.textChanged.connect(self._update_button_state)
        self.editor.submit_requested.connect(self._trigger_send)
        self.editor.history_previous_requested.connect(self._recall_previous)
        self.editor.history_next_requested.connect(self._recall_next)
        layout.addWidget(self.editor)

        buttons_row = QHBoxLayout()
        buttons_row.setSpacing(8)
        self.filter_button = QPushButton("Filters", self)
        self.filter_button.setObjectName("filterButton")
        self.filter_button.clicked.connect(lambda: self.filters_requested.emit())
        buttons_row.addWidget(self.filter_button)
        buttons_row.addStretch(1)
        self.send_button = QPushButton("Send", self)
        self.send_button.setDefault(True)
        self.send_button.clicked.connect(self._trigger_send)
        buttons_row.addWidget(self.send_button)
        layout.addLayout(buttons_row)

        self.set_documents(())
        self._update_button_state()

    # ------------------------------------------------------------------
    def text(self) -> str:
        return self.editor.toPlainText().strip()

    def set_text(self, text: str) -> None:
        self.editor.setPlainText(text)
        cursor = self.editor.textCursor()
        cursor.movePosition(cursor.MoveOperation.End)
        self.editor.setTextCursor(cursor)
        self._update_button_state()

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def chips(self) -> list[DocumentChip]:
        return list(self._chips)

    def set_busy(self, busy: bool) -> None:
        self._busy = bool(busy)
        self.editor.setReadOnly(self._busy)
        self.editor.setEnabled(not self._busy)
        self.filter_button.setEnabled(not self._busy)
        self._update_button_state()

    def set_filter_count(self, count: int) -> None:
        self.filter_button.setText(f"Filters ({count})" if count else "Filters")

    def set_documents(self, documents: Iterable[SelectedDocument]) -> None:
        for chip in self._chips:
            chip.setParent(None)
            chip.deleteLater()
        self._chips = []
        for document in documents:
            chip = DocumentChip(document, self)
            chip.remove_requested.connect(self.document_removed)
            self._chip_row.insertWidget(self._chip_row.count() - 1, chip)
            self._chips.append(chip)
        self._chip_caption.setVisible(bool(self._chips))

    def commit_sent(self, text: str) -> None:
        """Record an accepted query in the history and clear the editor."""

        if text and (not self._history or self._history[-1] != text):
            self._history.append(text)
        self._history_index = len(self._history)
        self.editor.clear()

    # ------------------------------------------------------------------
    def _trigger_send(self) -> None:
        if self._busy:
            return
        text = self.text()
        if not text:
            return
        self.send_requested.emit(text)

    def _recall_previous(self) -> None:
        if not self._history:
            return
        self._history_index = max(0, self._history_index - 1)
        self._apply_history()

    def _recall_next(self) -> None:
        if not self._history:
            return
        self._history_index = min(len(self._history), self._history_index + 1)
        self._apply_history()

    def _apply_history(self) -> None:
        if 0 <= self._history_index < len(self._history):
            self.set_text(self._history[self._history_index])
        else:
            self.editor.clear()

    def _update_button_state(self) -> None:
        self.send_button.setEnabled(bool(self.text()) and not self._busy)


__all__ = ["DocumentChip", "InputPanel"]
