"""Chat bubbles and reference cards for the conversation transcript."""

from __future__ import annotations

import html
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from PyQt6.QtCore import Qt, QTimer, QUrl, pyqtSignal
from PyQt6.QtGui import QDesktopServices, QTextOption
from PyQt6.QtWidgets import (
    QCheckBox,
    QFrame,
    QHBoxLayout,
    QLabel,
    QPlainTextEdit,
    QSizePolicy,
    QTextBrowser,
    QToolButton,
    QVBoxLayout,
    QWidget,
)

from ..services.citation_linker import (
    CITATION_EMPHASIS_MS,
    CitationSegment,
    Segment,
    link_citations,
)
from ..services.models import Reference, TranscriptEntry


logger = logging.getLogger(__name__)

_INLINE_CODE_RE = re.compile(r"`([^`]+)`")
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_LIST_ITEM_RE = re.compile(r"^\s*(?:[-*]|\d+[.)])\s+")
_CODE_FENCE_RE = re.compile(r"^```(.*)$")

URL_DISPLAY_LIMIT = 60
ABSTRACT_PREVIEW_LIMIT = 240
ACCENT = "#2563eb"


@dataclass(slots=True)
class MessageBlock:
    """Block-level segment of an assistant message."""

    type: str
    text: str = ""
    items: list[str] = field(default_factory=list)
    language: str | None = None


def truncate_text(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def format_timestamp(value: datetime | None) -> str:
    if value is None:
        return ""
    return value.strftime("%Y-%m-%d %H:%M")


def reference_byline(reference: Reference) -> str:
    parts = [reference.authors, reference.year, reference.type]
    return " • ".join(str(part) for part in parts if part)


def reference_affiliation(reference: Reference) -> str:
    parts = [reference.faculty, reference.department]
    return " • ".join(part for part in parts if part)


def _parse_blocks(text: str) -> list[MessageBlock]:
    """Parse raw assistant text into paragraphs, lists and fenced code."""

    blocks: list[MessageBlock] = []
    lines = text.splitlines()
    index = 0
    while index < len(lines):
        line = lines[index]
        fence_match = _CODE_FENCE_RE.match(line)
        if fence_match:
            language = fence_match.group(1).strip() or None
            index += 1
            code_lines: list[str] = []
            while index < len(lines) and not _CODE_FENCE_RE.match(lines[index]):
                code_lines.append(lines[index])
                index += 1
            if index < len(lines):
                index += 1
            blocks.append(MessageBlock(type="code", text="\n".join(code_lines), language=language))
            continue

        if not line.strip():
            index += 1
            continue

        if _LIST_ITEM_RE.match(line):
            items: list[str] = []
            while index < len(lines) and _LIST_ITEM_RE.match(lines[index]):
                items.append(_LIST_ITEM_RE.sub("", lines[index], count=1).rstrip())
                index += 1
            blocks.append(MessageBlock(type="list", items=items))
            continue

        paragraph_lines = [line.rstrip()]
        index += 1
        while index < len(lines):
            if not lines[index].strip():
                break
            if _LIST_ITEM_RE.match(lines[index]) or _CODE_FENCE_RE.match(lines[index]):
                break
            paragraph_lines.append(lines[index].rstrip())
            index += 1
        blocks.append(MessageBlock(type="paragraph", text="\n".join(paragraph_lines)))
    return blocks


def _render_plain_html(text: str) -> str:
    fragments: list[str] = []
    last_index = 0
    for match in _INLINE_CODE_RE.finditer(text):
        fragments.append(_BOLD_RE.sub(r"<b>\1</b>", html.escape(text[last_index:match.start()])))
        fragments.append(f"<code>{html.escape(match.group(1))}</code>")
        last_index = match.end()
    fragments.append(_BOLD_RE.sub(r"<b>\1</b>", html.escape(text[last_index:])))
    return "".join(fragments)


def _render_segments_html(segments: Sequence[Segment], *, accent: str = ACCENT) -> str:
    """Return HTML where only resolvable citation markers become links."""

    parts: list[str] = []
    for segment in segments:
        if isinstance(segment, CitationSegment):
            if segment.navigable:
                parts.append(
                    f"<a href='cite-{segment.number}' "
                    f"style='color:{accent};text-decoration:none;font-weight:600;'>"
                    f"{html.escape(segment.text)}</a>"
                )
            else:
                parts.append(html.escape(segment.text))
        else:
            parts.append(_render_plain_html(segment.text))
    return "".join(parts).replace("\n", "<br/>")


class TextBlockWidget(QTextBrowser):
    """Paragraph or list rendered with clickable citation markers."""

    citation_activated = pyqtSignal(int)

    def __init__(self, body_html: str, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setReadOnly(True)
        self.setOpenLinks(False)
        self.setOpenExternalLinks(False)
        self.setFrameShape(QFrame.Shape.NoFrame)
        self.setHorizontalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        self.setVerticalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        self.document().setDocumentMargin(0)
        self.document().setDefaultTextOption(QTextOption(Qt.AlignmentFlag.AlignLeft))
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Minimum)
        self.setTextInteractionFlags(
            Qt.TextInteractionFlag.TextSelectableByMouse
            | Qt.TextInteractionFlag.LinksAccessibleByMouse
        )
        self.anchorClicked.connect(self._on_anchor)
        self.setHtml(body_html)
        self.document().adjustSize()
        self.setMinimumHeight(math.ceil(self.document().size().height()))

    def resizeEvent(self, event):  # pragma: no cover - layout
        super().resizeEvent(event)
        self.document().setTextWidth(self.viewport().width())
        self.setMinimumHeight(math.ceil(self.document().size().height()))

    def _on_anchor(self, url: QUrl) -> None:
        target = url.toString()
        if not target.startswith("cite-"):
            return
        try:
            number = int(target.split("-", 1)[1])
        except (ValueError, IndexError):
            return
        self.citation_activated.emit(number)


class CodeBlockWidget(QFrame):
    """Read-only fenced code block."""

    def __init__(self, code: str, language: str | None, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.setObjectName("codeBlock")
        layout = QVBoxLayout(self)
        layout.setContentsMargins(8, 6, 8, 6)
        layout.setSpacing(4)
        label = QLabel(language or "Code", self)
        label.setObjectName("codeLanguageLabel")
        layout.addWidget(label)
        editor = QPlainTextEdit(self)
        editor.setReadOnly(True)
        editor.setFrameShape(QFrame.Shape.NoFrame)
        editor.setWordWrapMode(QTextOption.WrapMode.NoWrap)
        editor.setPlainText(code.rstrip("\n"))
        line_count = max(1, min(code.count("\n") + 1, 16))
        editor.setFixedHeight(editor.fontMetrics().lineSpacing() * line_count + 12)
        layout.addWidget(editor)
        self.setStyleSheet(
            "QFrame#codeBlock {border-radius: 8px; background-color: #f1f5f9;}"
        )


class ReferenceCard(QFrame):
    """One numbered reference with a working-set checkbox."""

    toggled = pyqtSignal(str, str)

    def __init__(
        self,
        reference: Reference,
        number: int,
        *,
        selected: bool = False,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self.reference = reference
        self.number = number
        self._emphasized = False
        self._expanded = False
        self.setObjectName("referenceCard")
        self._emphasis_timer = QTimer(self)
        self._emphasis_timer.setSingleShot(True)
        self._emphasis_timer.timeout.connect(self.clear_emphasis)

        outer = QHBoxLayout(self)
        outer.setContentsMargins(12, 10, 12, 10)
        outer.setSpacing(10)

        gutter = QVBoxLayout()
        gutter.setSpacing(4)
        self._number_label = QLabel(f"[{number}]", self)
        self._number_label.setObjectName("referenceNumber")
        gutter.addWidget(self._number_label)
        self.checkbox = QCheckBox(self)
        self.checkbox.setChecked(selected)
        self.checkbox.setToolTip(f"Select reference {reference.title}")
        self.checkbox.toggled.connect(self._on_checkbox_toggled)
        gutter.addWidget(self.checkbox)
        gutter.addStretch(1)
        outer.addLayout(gutter)

        body = QVBoxLayout()
        body.setSpacing(3)
        title = QLabel(reference.title, self)
        title.setObjectName("referenceTitle")
        title.setWordWrap(True)
        body.addWidget(title)

        self.byline_label = QLabel(reference_byline(reference), self)
        self.byline_label.setObjectName("referenceByline")
        body.addWidget(self.byline_label)

        affiliation = reference_affiliation(reference)
        self.affiliation_label = QLabel(affiliation, self)
        self.affiliation_label.setObjectName("referenceAffiliation")
        self.affiliation_label.setVisible(bool(affiliation))
        body.addWidget(self.affiliation_label)

        self.url_label = QLabel(self)
        self.url_label.setObjectName("referenceUrl")
        self.url_label.setText(
            f"<a href='{html.escape(reference.url, quote=True)}'>"
            f"{html.escape(truncate_text(reference.url, URL_DISPLAY_LIMIT))}</a>"
        )
        self.url_label.setVisible(bool(reference.url))
        self.url_label.setOpenExternalLinks(False)
        self.url_label.linkActivated.connect(self._open_url)
        body.addWidget(self.url_label)

        self.abstract_label = QLabel(self)
        self.abstract_label.setObjectName("referenceAbstract")
        self.abstract_label.setWordWrap(True)
        body.addWidget(self.abstract_label)

        self.expand_button = QToolButton(self)
        self.expand_button.setObjectName("referenceExpand")
        self.expand_button.setCursor(Qt.CursorShape.PointingHandCursor)
        self.expand_button.clicked.connect(self.toggle_abstract)
        self.expand_button.setVisible(len(reference.abstract) > ABSTRACT_PREVIEW_LIMIT)
        body.addWidget(self.expand_button, alignment=Qt.AlignmentFlag.AlignLeft)

        outer.addLayout(body, 1)
        self._update_abstract()
        self._apply_style()

    @property
    def emphasized(self) -> bool:
        return self._emphasized

    @property
    def expanded(self) -> bool:
        return self._expanded

    def set_selected(self, selected: bool) -> None:
        if self.checkbox.isChecked() == selected:
            return
        self.checkbox.blockSignals(True)
        self.checkbox.setChecked(selected)
        self.checkbox.blockSignals(False)
        self._apply_style()

    def emphasize(self, duration_ms: int = CITATION_EMPHASIS_MS) -> None:
        """Highlight the card and clear it again after ``duration_ms``.

        Emphasising an already highlighted card restarts the countdown.
        """

        self._emphasized = True
        self._apply_style()
        self._emphasis_timer.start(duration_ms)

    def clear_emphasis(self) -> None:
        self._emphasis_timer.stop()
        if not self._emphasized:
            return
        self._emphasized = False
        self._apply_style()

    def toggle_abstract(self) -> None:
        self._expanded = not self._expanded
        self._update_abstract()

    def _update_abstract(self) -> None:
        abstract = self.reference.abstract
        if self._expanded or len(abstract) <= ABSTRACT_PREVIEW_LIMIT:
            self.abstract_label.setText(abstract)
        else:
            self.abstract_label.setText(truncate_text(abstract, ABSTRACT_PREVIEW_LIMIT))
        self.expand_button.setText("Read less" if self._expanded else "Read more")

    def _apply_style(self) -> None:
        if self._emphasized:
            border, background = "#f59e0b", "#fef3c7"
        elif self.checkbox.isChecked():
            border, background = "#0f172a", "#f8fafc"
        else:
            border, background = "#e2e8f0", "#ffffff"
        self.setStyleSheet(
            f"QFrame#referenceCard {{border: 1px solid {border}; border-radius: 10px;"
            f" background-color: {background};}}"
        )

    def _on_checkbox_toggled(self, _checked: bool) -> None:
        self._apply_style()
        self.toggled.emit(self.reference.paper_id, self.reference.title)

    def _open_url(self, link: str) -> None:  # pragma: no cover - desktop services
        QDesktopServices.openUrl(QUrl(link))


class ReferenceList(QFrame):
    """Ordered reference cards of one assistant message."""

    toggled = pyqtSignal(str, str)

    def __init__(
        self,
        references: Sequence[Reference],
        *,
        selected_ids: Sequence[str] = (),
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 4, 0, 0)
        layout.setSpacing(8)
        header = QLabel(f"References ({len(references)})", self)
        header.setObjectName("referenceHeader")
        layout.addWidget(header)
        self._cards: list[ReferenceCard] = []
        for position, reference in enumerate(references, start=1):
            card = ReferenceCard(
                reference,
                position,
                selected=reference.paper_id in selected_ids,
                parent=self,
            )
            card.toggled.connect(self.toggled)
            layout.addWidget(card)
            self._cards.append(card)

    @property
    def cards(self) -> list[ReferenceCard]:
        return list(self._cards)

    def card(self, number: int) -> ReferenceCard | None:
        if number < 1 or number > len(self._cards):
            return None
        return self._cards[number - 1]

    def sync_selection(self, selected_ids: Sequence[str]) -> None:
        for card in self._cards:
            card.set_selected(card.reference.paper_id in selected_ids)


class ChatBubbleWidget(QFrame):
    """Base frame for one transcript entry."""

    def __init__(self, entry: TranscriptEntry, *, background: str, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self.entry = entry
        self._speaker = entry.role.value
        self._background = background
        self.setObjectName(f"chatBubble_{self._speaker}")
        outer = QVBoxLayout(self)
        outer.setContentsMargins(16, 12, 16, 12)
        outer.setSpacing(8)
        self._content_layout = QVBoxLayout()
        self._content_layout.setContentsMargins(0, 0, 0, 0)
        self._content_layout.setSpacing(10)
        outer.addLayout(self._content_layout)
        self._meta_label = QLabel(format_timestamp(entry.created_at), self)
        self._meta_label.setObjectName("bubbleMeta")
        self._meta_label.setVisible(entry.created_at is not None)
        outer.addWidget(self._meta_label)
        self.setStyleSheet(
            f"QFrame#chatBubble_{self._speaker} {{"
            f"background-color: {self._background};"
            "border: 0;"
            "border-radius: 18px;"
            "}}"
        )

    def add_widget(self, widget: QWidget) -> None:
        self._content_layout.addWidget(widget)


class UserBubbleWidget(ChatBubbleWidget):
    """User question rendered as plain text."""

    def __init__(self, entry: TranscriptEntry, parent: QWidget | None = None) -> None:
        super().__init__(entry, background="#e0e7ff", parent=parent)
        self.text_label = QLabel(entry.content, self)
        self.text_label.setTextFormat(Qt.TextFormat.PlainText)
        self.text_label.setWordWrap(True)
        self.text_label.setTextInteractionFlags(Qt.TextInteractionFlag.TextSelectableByMouse)
        self.add_widget(self.text_label)


class AssistantBubbleWidget(ChatBubbleWidget):
    """Assistant answer with linked citations and its reference list."""

    reference_revealed = pyqtSignal(object)
    document_toggled = pyqtSignal(str, str)

    def __init__(
        self,
        entry: TranscriptEntry,
        *,
        selected_ids: Sequence[str] = (),
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(entry, background="#ffffff", parent=parent)
        self.reference_list: ReferenceList | None = None
        self._text_blocks: list[TextBlockWidget] = []
        for block in _parse_blocks(entry.content):
            if block.type == "code":
                self.add_widget(CodeBlockWidget(block.text, block.language, self))
                continue
            if block.type == "list":
                items = "".join(
                    f"<li>{_render_segments_html(link_citations(item, entry.references))}</li>"
                    for item in block.items
                )
                body = f"<ul style='margin:0;'>{items}</ul>"
            else:
                body = _render_segments_html(link_citations(block.text, entry.references))
            widget = TextBlockWidget(f"<div>{body}</div>", self)
            widget.citation_activated.connect(self.reveal_reference)
            self._text_blocks.append(widget)
            self.add_widget(widget)
        self._segments = link_citations(entry.content, entry.references)
        if entry.references:
            self.reference_list = ReferenceList(
                entry.references, selected_ids=selected_ids, parent=self
            )
            self.reference_list.toggled.connect(self.document_toggled)
            self.add_widget(self.reference_list)

    @property
    def segments(self) -> list[Segment]:
        return list(self._segments)

    @property
    def text_blocks(self) -> list[TextBlockWidget]:
        return list(self._text_blocks)

    def reveal_reference(self, number: int) -> bool:
        """Emphasise reference ``number``; no-op when it does not exist."""

        if self.reference_list is None:
            return False
        card = self.reference_list.card(number)
        if card is None:
            logger.debug(
                "Ignoring unresolved citation",
                extra={"entry_id": self.entry.id, "citation": number},
            )
            return False
        card.emphasize()
        self.reference_revealed.emit(card)
        return True

    def sync_selection(self, selected_ids: Sequence[str]) -> None:
        if self.reference_list is not None:
            self.reference_list.sync_selection(selected_ids)


def build_bubble(
    entry: TranscriptEntry,
    *,
    selected_ids: Sequence[str] = (),
    parent: QWidget | None = None,
) -> ChatBubbleWidget:
    if entry.is_user:
        return UserBubbleWidget(entry, parent=parent)
    return AssistantBubbleWidget(entry, selected_ids=selected_ids, parent=parent)


__all__ = [
    "AssistantBubbleWidget",
    "ChatBubbleWidget",
    "CodeBlockWidget",
    "ReferenceCard",
    "ReferenceList",
    "TextBlockWidget",
    "UserBubbleWidget",
    "build_bubble",
    "format_timestamp",
    "reference_affiliation",
    "reference_byline",
    "truncate_text",
]
