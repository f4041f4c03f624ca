"""Scrollable transcript of the active conversation."""

from __future__ import annotations

import logging
from typing import Sequence

from PyQt6.QtCore import QEasingCurve, QPropertyAnimation, Qt, QTimer, pyqtSignal
from PyQt6.QtWidgets import QFrame, QLabel, QScrollArea, QVBoxLayout, QWidget

from ..services.models import TranscriptEntry
from ..services.scroll_targeter import RevealDirective
from .message_widgets import AssistantBubbleWidget, ChatBubbleWidget, build_bubble


logger = logging.getLogger(__name__)

#: Delay before applying a reveal so freshly added bubbles have been laid out.
REVEAL_DELAY_MS = 100
SCROLL_ANIMATION_MS = 250

EMPTY_HINT = "Ask a question about theses, dissertations or journal articles to get started."
LOADING_TEXT = "Loading conversation…"
TYPING_TEXT = "Assistant is searching documents…"


class ChatView(QScrollArea):
    """Render transcript entries as bubbles and honour reveal directives."""

    document_toggled = pyqtSignal(str, str)

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setWidgetResizable(True)
        self.setFrameShape(QFrame.Shape.NoFrame)
        self._bubbles: list[ChatBubbleWidget] = []
        self._selected_ids: list[str] = []
        self._loading = False

        container = QWidget(self)
        self._layout = QVBoxLayout(container)
        self._layout.setContentsMargins(16, 16, 16, 16)
        self._layout.setSpacing(12)

        self._placeholder = QLabel(EMPTY_HINT, container)
        self._placeholder.setObjectName("chatPlaceholder")
        self._placeholder.setWordWrap(True)
        self._placeholder.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._layout.addWidget(self._placeholder)

        self._typing_label = QLabel(TYPING_TEXT, container)
        self._typing_label.setObjectName("typingIndicator")
        self._typing_label.hide()
        self._layout.addWidget(self._typing_label)
        self._layout.addStretch(1)
        self.setWidget(container)

        self._scroll_animation = QPropertyAnimation(self.verticalScrollBar(), b"value", self)
        self._scroll_animation.setDuration(SCROLL_ANIMATION_MS)
        self._scroll_animation.setEasingCurve(QEasingCurve.Type.OutCubic)

    # ------------------------------------------------------------------
    @property
    def bubbles(self) -> list[ChatBubbleWidget]:
        return list(self._bubbles)

    @property
    def placeholder_text(self) -> str | None:
        return self._placeholder.text() if not self._placeholder.isHidden() else None

    @property
    def typing_visible(self) -> bool:
        return not self._typing_label.isHidden()

    def set_transcript(
        self, entries: Sequence[TranscriptEntry], *, selected_ids: Sequence[str] = ()
    ) -> None:
        """Bring the bubbles in line with ``entries``.

        Appends are applied incrementally; anything else rebuilds the view.
        """

        self._selected_ids = list(selected_ids)
        current_ids = [bubble.entry.id for bubble in self._bubbles]
        new_ids = [entry.id for entry in entries]
        if new_ids[: len(current_ids)] != current_ids:
            self._clear_bubbles()
            current_ids = []
        for entry in entries[len(current_ids):]:
            self._add_bubble(entry)
        self._update_placeholder()

    def set_loading(self, loading: bool) -> None:
        self._loading = loading
        self._update_placeholder()

    def set_typing(self, active: bool) -> None:
        self._typing_label.setVisible(active)

    def sync_selection(self, selected_ids: Sequence[str]) -> None:
        self._selected_ids = list(selected_ids)
        for bubble in self._bubbles:
            if isinstance(bubble, AssistantBubbleWidget):
                bubble.sync_selection(self._selected_ids)

    def bubble_for(self, entry_id: str) -> ChatBubbleWidget | None:
        for bubble in self._bubbles:
            if bubble.entry.id == entry_id:
                return bubble
        return None

    def apply_reveal(self, directive: RevealDirective | None) -> None:
        """Scroll the directive's entry to the top of the viewport, best effort."""

        if directive is None:
            return
        QTimer.singleShot(REVEAL_DELAY_MS, lambda: self.reveal_entry(directive.entry_id))

    def reveal_entry(self, entry_id: str) -> bool:
        bubble = self.bubble_for(entry_id)
        if bubble is None:
            return False
        self._scroll_to_top_of(bubble)
        return True

    # ------------------------------------------------------------------
    def _add_bubble(self, entry: TranscriptEntry) -> None:
        bubble = build_bubble(entry, selected_ids=self._selected_ids, parent=self.widget())
        if isinstance(bubble, AssistantBubbleWidget):
            bubble.document_toggled.connect(self.document_toggled)
            bubble.reference_revealed.connect(self._scroll_to_top_of)
        self._bubbles.append(bubble)
        # keep the typing indicator and stretch below the newest bubble
        self._layout.insertWidget(self._layout.indexOf(self._typing_label), bubble)

    def _clear_bubbles(self) -> None:
        for bubble in self._bubbles:
            bubble.setParent(None)
            bubble.deleteLater()
        self._bubbles.clear()

    def _update_placeholder(self) -> None:
        if self._loading:
            self._placeholder.setText(LOADING_TEXT)
            self._placeholder.setVisible(True)
        elif not self._bubbles:
            self._placeholder.setText(EMPTY_HINT)
            self._placeholder.setVisible(True)
        else:
            self._placeholder.setVisible(False)

    def _scroll_to_top_of(self, widget: QWidget) -> None:
        bar = self.verticalScrollBar()
        if bar is None:
            return
        container = self.widget()
        top = widget.mapTo(container, widget.rect().topLeft()).y()
        self._scroll_animation.stop()
        self._scroll_animation.setStartValue(bar.value())
        self._scroll_animation.setEndValue(min(max(top - 8, 0), bar.maximum()))
        self._scroll_animation.start()


__all__ = ["ChatView", "EMPTY_HINT", "LOADING_TEXT", "REVEAL_DELAY_MS", "SCROLL_ANIMATION_MS"]
