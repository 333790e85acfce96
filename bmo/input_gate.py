"""
Input gating — decides when typed text may be submitted.

``InputGate`` is a two-state machine (Accepting / Locked).  Committing
non-blank text while Accepting locks the gate and hands the trimmed text to
whoever listens on ``committed`` (the orchestrator).  Only the orchestrator
reopens the gate, once the in-flight request has a terminal outcome.  A
missing API key locks the gate for good.

``ChatInput`` is the text box in front of the gate: Enter submits,
Shift+Enter inserts a newline, and the box grows with its content.
"""
from enum import Enum
from typing import Optional

from PyQt6.QtCore import QObject, Qt, pyqtSignal
from PyQt6.QtGui import QFocusEvent, QKeyEvent
from PyQt6.QtWidgets import QFrame, QTextEdit

from bmo.constants import INPUT_BASE_HEIGHT, INPUT_MAX_HEIGHT, logger


class GateState(Enum):
    ACCEPTING = "accepting"
    LOCKED = "locked"


class InputGate(QObject):
    committed = pyqtSignal(str)          # trimmed text
    state_changed = pyqtSignal(object)   # GateState

    def __init__(self, parent=None):
        super().__init__(parent)
        self._state = GateState.ACCEPTING
        self._permanent = False

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def is_accepting(self) -> bool:
        return self._state is GateState.ACCEPTING

    @property
    def is_permanently_locked(self) -> bool:
        return self._permanent

    def commit(self, raw: str) -> Optional[str]:
        """Submit *raw* if the gate is open and the text is not blank.

        Returns the trimmed text that was handed on, or None for a no-op.
        """
        if not self.is_accepting:
            logger.debug("InputGate: submission ignored while locked")
            return None
        text = raw.strip()
        if not text:
            return None
        self._set_state(GateState.LOCKED)
        self.committed.emit(text)
        return text

    def lock(self):
        self._set_state(GateState.LOCKED)

    def release(self):
        if self._permanent:
            return
        self._set_state(GateState.ACCEPTING)

    def lock_permanently(self):
        self._permanent = True
        if self._state is GateState.LOCKED:
            # Widgets still need to learn the lock is now permanent
            self.state_changed.emit(self._state)
        else:
            self._set_state(GateState.LOCKED)

    def _set_state(self, state: GateState):
        if state is self._state:
            return
        self._state = state
        self.state_changed.emit(state)


class ChatInput(QTextEdit):
    """Plain-text input that submits through an ``InputGate`` on Enter."""

    def __init__(self, gate: InputGate, parent=None):
        super().__init__(parent)
        self._gate = gate
        self.setObjectName("chat_input")
        self.setAcceptRichText(False)
        self.setPlaceholderText("Start typing...")
        self.setFrameShape(QFrame.Shape.StyledPanel)
        self.setVerticalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAsNeeded)
        self.setHorizontalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        self.setFixedHeight(INPUT_BASE_HEIGHT)
        self.textChanged.connect(self._fit_to_content)
        gate.state_changed.connect(self._on_gate_state_changed)

    @property
    def gate(self) -> InputGate:
        return self._gate

    def submit(self) -> bool:
        """Commit the current text; clear the box if the gate accepted it."""
        if self._gate.commit(self.toPlainText()) is None:
            return False
        self.clear()
        self.reset_height()
        return True

    def reset_height(self):
        self.setFixedHeight(INPUT_BASE_HEIGHT)

    def keyPressEvent(self, event: QKeyEvent):
        # Enter never inserts a newline unless Shift is held, locked or not
        if (event.key() in (Qt.Key.Key_Return, Qt.Key.Key_Enter)
                and not event.modifiers() & Qt.KeyboardModifier.ShiftModifier):
            event.accept()
            self.submit()
            return
        super().keyPressEvent(event)

    def focusOutEvent(self, event: QFocusEvent):
        super().focusOutEvent(event)
        if not self.toPlainText():
            self.reset_height()

    def _fit_to_content(self):
        if not self.toPlainText():
            self.reset_height()
            return
        margins = self.contentsMargins()
        doc_height = (int(self.document().size().height())
                      + margins.top() + margins.bottom())
        self.setFixedHeight(max(INPUT_BASE_HEIGHT, min(doc_height, INPUT_MAX_HEIGHT)))

    def _on_gate_state_changed(self, state: GateState):
        if self._gate.is_permanently_locked:
            self.setEnabled(False)
            self.setPlaceholderText("Chat disabled: API key not configured")
