"""
Chatbot view — header, scrolling transcript and input box.

The view owns the session for as long as it is open.  It wires the input
gate to the orchestrator and turns orchestrator signals into bubbles; it
never touches the transcript itself.  Each bubble is stored on its turn
(``Turn.handle``) when it is created, so later updates go straight to it.
"""
from __future__ import annotations

from typing import Callable, Optional

from PyQt6.QtCore import Qt, QTimer, QUrl, pyqtSignal
from PyQt6.QtGui import QDesktopServices, QFont
from PyQt6.QtWidgets import (
    QApplication, QFrame, QHBoxLayout, QLabel, QPushButton, QScrollArea,
    QSizePolicy, QTextBrowser, QVBoxLayout, QWidget,
)

from bmo.config import ChatSettings, format_model_name
from bmo.constants import logger
from bmo.input_gate import ChatInput, InputGate
from bmo.orchestrator import RequestOrchestrator
from bmo.rendering import COPIED_NOTICE, COPY_SCHEME, RenderedContent, RenderPipeline, copy_code_block
from bmo.transcript import USER, Session, Turn

ERROR_LABEL = "ERROR"
USER_LABEL = "USER"


# ---------------------------------------------------------------------------
# Auto-sizing QTextBrowser that grows to fit its content
# ---------------------------------------------------------------------------

class _AutoSizingBrowser(QTextBrowser):
    """QTextBrowser that reports its ideal height so the parent layout can
    size it without an internal scrollbar.  The outer QScrollArea handles
    scrolling for the entire chat history."""

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setVerticalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        self.setHorizontalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        self.setSizePolicy(QSizePolicy.Policy.Preferred,
                           QSizePolicy.Policy.Minimum)
        self.document().contentsChanged.connect(self._update_height)
        self.setReadOnly(True)
        # Anchors are handled by the bubble (copy-code links, external URLs)
        self.setOpenLinks(False)
        self.document().setDocumentMargin(2)

    def _update_height(self):
        doc_height = int(self.document().size().height()) + 6
        self.setMinimumHeight(doc_height)
        self.setMaximumHeight(doc_height)

    def resizeEvent(self, event):
        super().resizeEvent(event)
        self._update_height()


# ---------------------------------------------------------------------------
# Individual message bubble widget
# ---------------------------------------------------------------------------

class MessageBubble(QFrame):
    """A single turn in the chat history."""

    notification = pyqtSignal(str)

    def __init__(self, role: str, assistant_name: str = "Assistant", parent=None):
        super().__init__(parent)
        self._role = role
        self._raw_text = ""
        self._rendered: Optional[RenderedContent] = None

        self.setObjectName("chat_bubble_user" if role == USER
                           else "chat_bubble_assistant")
        self.setFrameShape(QFrame.Shape.StyledPanel)
        self.setSizePolicy(QSizePolicy.Policy.Preferred,
                           QSizePolicy.Policy.Maximum)

        outer = QVBoxLayout(self)
        outer.setContentsMargins(10, 8, 10, 8)
        outer.setSpacing(4)

        self._role_label = QLabel(USER_LABEL if role == USER else assistant_name)
        self._role_label.setObjectName("chat_role_label")
        font = self._role_label.font()
        font.setWeight(QFont.Weight.DemiBold)
        self._role_label.setFont(font)

        header_row = QHBoxLayout()
        header_row.setContentsMargins(0, 0, 0, 0)
        header_row.addWidget(self._role_label)
        header_row.addStretch()

        self._copy_btn = QPushButton("Copy")
        self._copy_btn.setFlat(True)
        self._copy_btn.setToolTip("Copy message to clipboard")
        self._copy_btn.setCursor(Qt.CursorShape.PointingHandCursor)
        self._copy_btn.setObjectName("chat_copy_btn")
        self._copy_btn.clicked.connect(self._copy_content)
        self._copy_btn.setVisible(False)
        header_row.addWidget(self._copy_btn)
        outer.addLayout(header_row)

        self._loading_label = QLabel("")
        self._loading_label.setObjectName("chat_loading_label")
        self._loading_label.setVisible(False)
        outer.addWidget(self._loading_label)

        self._content_browser = _AutoSizingBrowser()
        self._content_browser.setObjectName("chat_content")
        self._content_browser.anchorClicked.connect(self._on_anchor_clicked)
        outer.addWidget(self._content_browser)

        self._error_label = QLabel("")
        self._error_label.setObjectName("chat_error_label")
        self._error_label.setWordWrap(True)
        self._error_label.setTextFormat(Qt.TextFormat.PlainText)
        self._error_label.setVisible(False)
        outer.addWidget(self._error_label)

    # -- public API --

    @property
    def role_label(self) -> str:
        return self._role_label.text()

    @property
    def indicator_text(self) -> str:
        return self._loading_label.text() if self._loading_label.isVisibleTo(self) else ""

    @property
    def error_text(self) -> str:
        return self._error_label.text()

    @property
    def content_html(self) -> str:
        return self._content_browser.toHtml()

    @property
    def rendered(self) -> Optional[RenderedContent]:
        return self._rendered

    def set_role_label(self, text: str):
        self._role_label.setText(text)

    def set_indicator(self, dots: str):
        self._loading_label.setText(dots)
        self._loading_label.setVisible(True)
        self._content_browser.setVisible(False)

    def clear_indicator(self):
        self._loading_label.setText("")
        self._loading_label.setVisible(False)

    def show_turn(self, turn: Turn):
        """Display whatever the turn currently carries."""
        if turn.role == USER:
            # User text is shown verbatim, never interpreted as markup
            self._raw_text = turn.raw_text
            self._content_browser.setPlainText(turn.raw_text)
            self._content_browser.setVisible(True)
            return
        self.clear_indicator()
        if turn.is_error:
            self._content_browser.setVisible(False)
            self._error_label.setText(turn.error_note or "")
            self._error_label.setVisible(True)
            return
        if turn.rendered is not None:
            self._raw_text = turn.raw_text
            self._rendered = turn.rendered
            self._content_browser.setHtml(turn.rendered.html)
            self._content_browser.setVisible(True)
            self._copy_btn.setVisible(True)

    def copy_code(self, anchor: str) -> bool:
        """Copy the code block behind a ``copy-code:<n>`` anchor."""
        if self._rendered is None:
            return False
        if copy_code_block(self._rendered, anchor, QApplication.clipboard()):
            self.notification.emit(COPIED_NOTICE)
            return True
        return False

    # -- private --

    def _on_anchor_clicked(self, url: QUrl):
        if url.scheme() == COPY_SCHEME:
            self.copy_code(url.toString())
            return
        if url.scheme() in ("http", "https", "mailto"):
            QDesktopServices.openUrl(url)
        else:
            logger.debug(f"Chat: ignoring link with scheme {url.scheme()!r}")

    def _copy_content(self):
        clipboard = QApplication.clipboard()
        if clipboard is None:
            logger.error("Chat: failed to copy message: clipboard unavailable")
            return
        clipboard.setText(self._raw_text)
        self._copy_btn.setToolTip("Copied!")
        QTimer.singleShot(1500,
                          lambda: self._copy_btn.setToolTip("Copy message to clipboard"))
        self.notification.emit(COPIED_NOTICE)


# ---------------------------------------------------------------------------
# Main chat view
# ---------------------------------------------------------------------------

class ChatbotView(QWidget):
    """Self-contained chat view: one session, one orchestrator, one input box."""

    notification = pyqtSignal(str)

    def __init__(self, settings: ChatSettings,
                 is_dark_fn: Optional[Callable[[], bool]] = None,
                 worker_factory: Optional[Callable] = None,
                 parent=None):
        super().__init__(parent)
        self._is_dark_fn = is_dark_fn or (lambda: False)
        self.session = Session(settings)
        self.gate = InputGate(self)
        renderer = RenderPipeline(style="monokai" if self._is_dark_fn() else "default")
        kwargs = {"worker_factory": worker_factory} if worker_factory else {}
        self.orchestrator = RequestOrchestrator(self.session, self.gate,
                                                renderer=renderer, parent=self,
                                                **kwargs)

        self._setup_ui()

        orch = self.orchestrator
        orch.turn_appended.connect(self._on_turn_appended)
        orch.pending_started.connect(self._on_pending_started)
        orch.indicator_changed.connect(self._on_indicator_changed)
        orch.indicator_cleared.connect(self._on_indicator_cleared)
        orch.request_finished.connect(self._on_request_finished)
        orch.configuration_failed.connect(self._on_configuration_failed)
        orch.notification.connect(self.notification)

    # -- public API --

    @property
    def input(self) -> ChatInput:
        return self._input

    @property
    def heading_text(self) -> str:
        return self._name_heading.text()

    @property
    def model_text(self) -> str:
        return self._model_label.text()

    def bubbles(self) -> list:
        return [self._history_layout.itemAt(i).widget()
                for i in range(self._history_layout.count())
                if isinstance(self._history_layout.itemAt(i).widget(), MessageBubble)]

    def copy_all_chat(self) -> str:
        """Copy the whole conversation as markdown; returns the copied text."""
        text = self.session.transcript.to_markdown(self.session.settings.display_name)
        if not text:
            self.notification.emit("Nothing to copy yet")
            return ""
        clipboard = QApplication.clipboard()
        if clipboard is None:
            logger.error("Chat: failed to copy chat: clipboard unavailable")
            return ""
        clipboard.setText(text)
        self.notification.emit("Chat copied to clipboard")
        return text

    def shutdown(self):
        """Tear down: stop the indicator and drop any in-flight request."""
        self.orchestrator.shutdown()

    # -- UI --

    def _setup_ui(self):
        settings = self.session.settings
        layout = QVBoxLayout(self)
        layout.setContentsMargins(8, 8, 8, 8)
        layout.setSpacing(6)

        header = QHBoxLayout()
        titles = QVBoxLayout()
        self._name_heading = QLabel(settings.display_name)
        self._name_heading.setObjectName("chatbot_name_heading")
        heading_font = self._name_heading.font()
        heading_font.setPointSize(18)
        heading_font.setWeight(QFont.Weight.Bold)
        self._name_heading.setFont(heading_font)
        titles.addWidget(self._name_heading)

        self._model_label = QLabel(f"Model: {format_model_name(settings.model)}")
        self._model_label.setObjectName("chatbot_model_name")
        titles.addWidget(self._model_label)
        header.addLayout(titles)
        header.addStretch()

        copy_all_btn = QPushButton("Copy chat")
        copy_all_btn.setObjectName("chat_copy_all_btn")
        copy_all_btn.setToolTip("Copy the whole conversation as markdown")
        copy_all_btn.clicked.connect(self.copy_all_chat)
        header.addWidget(copy_all_btn, alignment=Qt.AlignmentFlag.AlignTop)
        layout.addLayout(header)

        self._scroll_area = QScrollArea()
        self._scroll_area.setObjectName("chat_history")
        self._scroll_area.setWidgetResizable(True)
        self._scroll_area.setHorizontalScrollBarPolicy(
            Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        history = QWidget()
        self._history_layout = QVBoxLayout(history)
        self._history_layout.setContentsMargins(0, 0, 0, 0)
        self._history_layout.setSpacing(8)
        self._history_layout.addStretch()
        self._scroll_area.setWidget(history)
        layout.addWidget(self._scroll_area, stretch=1)

        self._input = ChatInput(self.gate)
        layout.addWidget(self._input)

    def _add_bubble(self, turn: Turn) -> MessageBubble:
        bubble = MessageBubble(turn.role,
                               assistant_name=self.session.settings.display_name)
        bubble.notification.connect(self.notification)
        idx = max(0, self._history_layout.count() - 1)
        self._history_layout.insertWidget(idx, bubble)
        turn.handle = bubble
        QTimer.singleShot(50, self._scroll_to_bottom)
        return bubble

    # -- orchestrator signals --

    def _on_turn_appended(self, turn: Turn):
        bubble = turn.handle if turn.handle is not None else self._add_bubble(turn)
        bubble.show_turn(turn)

    def _on_pending_started(self, turn: Turn):
        self._add_bubble(turn)

    def _on_indicator_changed(self, turn: Turn, dots: str):
        if turn.handle is not None:
            turn.handle.set_indicator(dots)

    def _on_indicator_cleared(self, turn: Turn):
        if turn.handle is not None:
            turn.handle.clear_indicator()

    def _on_request_finished(self, turn: Turn):
        self._input.setFocus()
        QTimer.singleShot(50, self._scroll_to_bottom)

    def _on_configuration_failed(self, message: str):
        self._name_heading.setText(ERROR_LABEL)
        last = self.session.transcript.last
        if last is not None and last.handle is not None:
            last.handle.set_role_label(ERROR_LABEL)

    def _scroll_to_bottom(self):
        sb = self._scroll_area.verticalScrollBar()
        sb.setValue(sb.maximum())
