"""
Request orchestration — drives one request/response cycle end to end.

The orchestrator is the only writer of the session transcript and the only
owner of the request state.  One request can be in flight at a time: the
input gate is locked for the duration and ``submit`` refuses to start a
second request even if called directly.

Lifecycle of a submission::

    Idle --submit--> Pending --reply--> Idle
                        |   --error--> Idle   (error turn appended)
    Idle --no API key--> ConfiguredError       (terminal, gate stays locked)

The pending indicator is a QTimer owned here.  It is stopped on every
terminal path and on ``shutdown()``; ``indicator_cleared`` fires exactly
once per request.
"""
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Set

from PyQt6.QtCore import QObject, QTimer, pyqtSignal, pyqtSlot

from bmo.constants import INDICATOR_INTERVAL_MS, INDICATOR_MAX_DOTS, logger
from bmo.errors import ConfigurationError
from bmo.input_gate import InputGate
from bmo.rendering import RenderPipeline
from bmo.transcript import ASSISTANT, USER, Session, Turn
from bmo.workers import CompletionWorker

FAILURE_NOTICE_PREFIX = "Error occurred while fetching completion: "


class RequestState(Enum):
    IDLE = "idle"
    PENDING = "pending"
    CONFIGURED_ERROR = "configured_error"


@dataclass
class PendingRequest:
    started_at: float
    turn: Turn
    worker: Any = None


class RequestOrchestrator(QObject):
    turn_appended = pyqtSignal(object)            # Turn, after it joins the transcript
    pending_started = pyqtSignal(object)          # reserved assistant Turn
    indicator_changed = pyqtSignal(object, str)   # Turn, dots
    indicator_cleared = pyqtSignal(object)        # Turn
    request_finished = pyqtSignal(object)         # resolved assistant Turn
    configuration_failed = pyqtSignal(str)
    notification = pyqtSignal(str)

    # Workers still running after their orchestrator shut down; kept alive
    # until the thread exits so Qt never destroys a running QThread.
    _retired_workers: Set[Any] = set()

    def __init__(self, session: Session, gate: InputGate,
                 renderer: Optional[RenderPipeline] = None,
                 worker_factory: Callable[..., Any] = CompletionWorker,
                 parent=None):
        super().__init__(parent)
        self.session = session
        self.gate = gate
        self.renderer = renderer or RenderPipeline()
        self._worker_factory = worker_factory
        self._state = RequestState.IDLE
        self._pending: Optional[PendingRequest] = None
        self._last_worker: Any = None
        self._disposed = False

        self._indicator_turn: Optional[Turn] = None
        self._indicator_dots = ""
        self._indicator_timer = QTimer(self)
        self._indicator_timer.setInterval(INDICATOR_INTERVAL_MS)
        self._indicator_timer.timeout.connect(self._tick_indicator)

        gate.committed.connect(self.submit)

    # -- state --

    @property
    def state(self) -> RequestState:
        return self._state

    @property
    def pending(self) -> Optional[PendingRequest]:
        return self._pending

    @property
    def indicator_text(self) -> str:
        return self._indicator_dots

    @property
    def indicator_active(self) -> bool:
        return self._indicator_timer.isActive()

    # -- submission --

    @pyqtSlot(str)
    def submit(self, text: str):
        if self._disposed or not text.strip():
            return
        if self._state is RequestState.CONFIGURED_ERROR:
            logger.debug("Chat: submission ignored, session is disabled")
            return
        if self._state is RequestState.PENDING:
            logger.warning("Chat: submission ignored, a request is already pending")
            return

        self.gate.lock()
        settings = self.session.settings
        user_turn = Turn(USER, text)
        try:
            settings.require_api_key()
        except ConfigurationError as e:
            self._fail_configuration(user_turn, str(e))
            return

        self._append(user_turn)

        reserved = Turn(ASSISTANT)
        self._pending = PendingRequest(started_at=time.monotonic(), turn=reserved)
        self._state = RequestState.PENDING
        self.pending_started.emit(reserved)
        self._start_indicator(reserved)

        context = self.session.transcript.serialize()
        worker = self._worker_factory(settings, context)
        worker.reply_ready.connect(self._on_reply_ready)
        worker.request_failed.connect(self._on_request_failed)
        self._pending.worker = worker
        self._release_last_worker()
        self._last_worker = worker

        logger.info(f"Chat: sending request, model={settings.model}, "
                    f"turns={len(self.session.transcript)}, context_len={len(context)}")
        worker.start()

    def _fail_configuration(self, user_turn: Turn, message: str):
        logger.error(f"Chat: {message}")
        self._append(user_turn)
        error_turn = Turn(ASSISTANT)
        error_turn.fail(message)
        self._append(error_turn)
        self._state = RequestState.CONFIGURED_ERROR
        self.gate.lock_permanently()
        self.configuration_failed.emit(message)
        self.notification.emit(message)

    # -- outcomes --

    @pyqtSlot(str)
    def _on_reply_ready(self, reply: str):
        pending = self._take_pending()
        if pending is None:
            return
        try:
            rendered = self.renderer.render(reply)
        except Exception as e:
            logger.error(f"Chat: failed to render reply: {e}", exc_info=True)
            self._finish_with_error(pending, f"Failed to render reply: {e}")
            return
        pending.turn.resolve(reply, rendered)
        logger.info(f"Chat: reply received in {time.monotonic() - pending.started_at:.1f}s "
                    f"({len(reply)} chars, {len(rendered.code_blocks)} code blocks)")
        self._finish(pending)

    @pyqtSlot(str)
    def _on_request_failed(self, reason: str):
        pending = self._take_pending()
        if pending is None:
            return
        self._finish_with_error(pending, reason)

    def _finish_with_error(self, pending: PendingRequest, reason: str):
        logger.warning(f"Chat: request failed after "
                       f"{time.monotonic() - pending.started_at:.1f}s: {reason}")
        pending.turn.fail(reason)
        self.notification.emit(FAILURE_NOTICE_PREFIX + reason)
        self._finish(pending)

    def _take_pending(self) -> Optional[PendingRequest]:
        if self._disposed or self._pending is None:
            logger.debug("Chat: discarding result with no pending request")
            return None
        pending = self._pending
        self._pending = None
        if pending.worker is not None:
            self._detach_worker(pending.worker)
        self._stop_indicator()
        return pending

    def _finish(self, pending: PendingRequest):
        self._append(pending.turn)
        self._state = RequestState.IDLE
        self.gate.release()
        self.request_finished.emit(pending.turn)

    def _append(self, turn: Turn):
        self.session.transcript.append(turn)
        self.turn_appended.emit(turn)

    # -- indicator --

    def _start_indicator(self, turn: Turn):
        self._indicator_turn = turn
        self._indicator_dots = "."
        self.indicator_changed.emit(turn, self._indicator_dots)
        self._indicator_timer.start()

    def _tick_indicator(self):
        if self._indicator_turn is None:
            return
        dots = self._indicator_dots + "."
        if len(dots) > INDICATOR_MAX_DOTS:
            dots = "."
        self._indicator_dots = dots
        self.indicator_changed.emit(self._indicator_turn, dots)

    def _stop_indicator(self):
        self._indicator_timer.stop()
        turn = self._indicator_turn
        if turn is None:
            return
        self._indicator_turn = None
        self._indicator_dots = ""
        self.indicator_cleared.emit(turn)

    # -- teardown --

    def shutdown(self):
        """Stop the indicator and detach from any in-flight request.

        The HTTP call itself cannot be aborted; its worker is cancelled so
        the eventual response is dropped instead of touching this session.
        """
        if self._disposed:
            return
        self._disposed = True
        self._stop_indicator()
        pending, self._pending = self._pending, None
        if pending is not None and pending.worker is not None:
            logger.info("Chat: shutting down with a request in flight, discarding it")
            pending.worker.cancel()
            self._detach_worker(pending.worker)
        self._release_last_worker()
        try:
            self.gate.committed.disconnect(self.submit)
        except TypeError:
            pass

    def _detach_worker(self, worker):
        for signal, slot in ((worker.reply_ready, self._on_reply_ready),
                             (worker.request_failed, self._on_request_failed)):
            try:
                signal.disconnect(slot)
            except TypeError:
                pass

    def _release_last_worker(self):
        worker, self._last_worker = self._last_worker, None
        if worker is None or not hasattr(worker, "isRunning") or not worker.isRunning():
            return
        retired = RequestOrchestrator._retired_workers
        retired.add(worker)
        worker.finished.connect(lambda w=worker: retired.discard(w))
