"""
Request orchestrator: single-flight lifecycle, indicator, outcomes.

The worker factory is replaced by ``WorkerRecorder`` (see conftest), so each
test decides when and how the "network" answers.
"""
import pytest
from PyQt6.QtTest import QTest

from bmo.config import ChatSettings
from bmo.constants import INDICATOR_INTERVAL_MS
from bmo.input_gate import GateState, InputGate
from bmo.orchestrator import FAILURE_NOTICE_PREFIX, RequestOrchestrator, RequestState
from bmo.rendering import RenderedContent
from bmo.transcript import ASSISTANT, USER, Session


class _Harness:
    def __init__(self, settings, workers):
        self.session = Session(settings)
        self.gate = InputGate()
        self.workers = workers
        self.orch = RequestOrchestrator(self.session, self.gate,
                                        worker_factory=workers)
        self.notifications = []
        self.indicator = []
        self.cleared = []
        self.finished = []
        self.config_errors = []
        self.orch.notification.connect(self.notifications.append)
        self.orch.indicator_changed.connect(lambda turn, dots: self.indicator.append(dots))
        self.orch.indicator_cleared.connect(self.cleared.append)
        self.orch.request_finished.connect(self.finished.append)
        self.orch.configuration_failed.connect(self.config_errors.append)

    @property
    def turns(self):
        return self.session.transcript.turns


@pytest.fixture
def harness(qapp, settings, workers):
    h = _Harness(settings, workers)
    yield h
    h.orch.shutdown()


@pytest.fixture
def keyless(qapp, workers):
    h = _Harness(ChatSettings(api_key=""), workers)
    yield h
    h.orch.shutdown()


class TestSubmission:
    def test_user_turn_is_appended_before_the_request(self, harness):
        harness.gate.commit("Hello")
        assert len(harness.workers.workers) == 1
        worker = harness.workers.last
        # The request context already contains the new user turn
        assert worker.context == "Hello\n"
        assert worker.started
        assert [(t.role, t.raw_text) for t in harness.turns] == [(USER, "Hello")]
        assert harness.orch.state is RequestState.PENDING
        assert harness.gate.state is GateState.LOCKED

    def test_blank_input_issues_nothing(self, harness):
        assert harness.gate.commit("   \n ") is None
        assert harness.turns == ()
        assert harness.workers.workers == []
        assert harness.gate.state is GateState.ACCEPTING
        assert harness.orch.state is RequestState.IDLE

    def test_repeated_submissions_while_pending_are_ignored(self, harness):
        harness.gate.commit("first")
        harness.gate.commit("second")
        harness.gate.commit("third")
        harness.orch.submit("direct call")
        assert len(harness.workers.workers) == 1
        assert len(harness.turns) == 1

    def test_pending_references_reserved_turn(self, harness):
        harness.gate.commit("Hello")
        pending = harness.orch.pending
        assert pending is not None
        assert pending.turn.role == ASSISTANT
        assert not pending.turn.is_resolved
        assert pending.turn not in harness.turns

    def test_context_includes_previous_exchange(self, harness):
        harness.gate.commit("Hi")
        harness.workers.last.reply_ready.emit("Hello!")
        harness.gate.commit("Again")
        assert harness.workers.last.context == "Hi\nHello!\nAgain\n"

    def test_multiline_input_is_kept_verbatim(self, harness):
        harness.gate.commit("Hello\nworld")
        assert harness.turns[0].raw_text == "Hello\nworld"


class TestIndicator:
    def test_cycles_one_to_three_and_wraps(self, harness):
        harness.gate.commit("Hello")
        assert harness.orch.indicator_active
        for _ in range(4):
            harness.orch._tick_indicator()
        assert harness.indicator == [".", "..", "...", ".", ".."]
        assert harness.orch.indicator_text == ".."

    def test_timer_fires_every_interval(self, harness):
        harness.gate.commit("Hello")
        assert harness.orch._indicator_timer.interval() == INDICATOR_INTERVAL_MS
        # Just over two intervals of a running event loop
        QTest.qWait(2 * INDICATOR_INTERVAL_MS + 200)
        assert harness.indicator[:3] == [".", "..", "..."]
        assert 3 <= len(harness.indicator) <= 4

    def test_cleared_exactly_once_on_success(self, harness):
        harness.gate.commit("Hello")
        turn = harness.orch.pending.turn
        harness.workers.last.reply_ready.emit("Hi")
        harness.orch.shutdown()
        assert harness.cleared == [turn]
        assert not harness.orch.indicator_active
        assert harness.orch.indicator_text == ""

    def test_cleared_exactly_once_on_failure(self, harness):
        harness.gate.commit("Hello")
        harness.workers.last.request_failed.emit("HTTP 500: boom")
        assert len(harness.cleared) == 1
        assert not harness.orch.indicator_active

    def test_tick_after_stop_is_ignored(self, harness):
        harness.gate.commit("Hello")
        harness.workers.last.reply_ready.emit("Hi")
        count = len(harness.indicator)
        harness.orch._tick_indicator()
        assert len(harness.indicator) == count


class TestSuccess:
    def test_one_rendered_assistant_turn_and_gate_reopens(self, harness):
        harness.gate.commit("Show code")
        reply = "Sure:\n\n```python\nprint('hi')\n```"
        harness.workers.last.reply_ready.emit(reply)

        assert len(harness.turns) == 2
        user, assistant = harness.turns
        assert user.raw_text == "Show code"
        assert assistant.role == ASSISTANT
        assert assistant.raw_text == reply
        assert isinstance(assistant.rendered, RenderedContent)
        assert assistant.rendered.code_blocks[0].plain_text == "print('hi')"
        assert not assistant.is_error
        assert harness.orch.state is RequestState.IDLE
        assert harness.orch.pending is None
        assert harness.gate.is_accepting
        assert harness.finished == [assistant]

    def test_renderer_failure_becomes_error_turn(self, harness, monkeypatch):
        def explode(text):
            raise ValueError("bad markup")

        monkeypatch.setattr(harness.orch.renderer, "render", explode)
        harness.gate.commit("Hello")
        harness.workers.last.reply_ready.emit("whatever")
        assert harness.turns[-1].is_error
        assert "bad markup" in harness.turns[-1].error_note
        assert harness.gate.is_accepting


class TestFailure:
    def test_error_turn_attached_user_turn_unchanged(self, harness):
        harness.gate.commit("Hello")
        harness.workers.last.request_failed.emit("HTTP 429: slow down")

        assert len(harness.turns) == 2
        user, failed = harness.turns
        assert (user.role, user.raw_text) == (USER, "Hello")
        assert failed.is_error
        assert failed.error_note == "HTTP 429: slow down"
        assert failed.rendered is None
        assert harness.notifications == [FAILURE_NOTICE_PREFIX + "HTTP 429: slow down"]
        assert harness.orch.state is RequestState.IDLE
        assert harness.gate.is_accepting

    def test_session_stays_usable_without_retry(self, harness):
        harness.gate.commit("Hello")
        harness.workers.last.request_failed.emit("Network error")
        assert len(harness.workers.workers) == 1
        harness.gate.commit("Hello again")
        assert len(harness.workers.workers) == 2
        # The failed exchange contributes only the user's text
        assert harness.workers.last.context == "Hello\nHello again\n"

    def test_duplicate_outcome_is_ignored(self, harness):
        harness.gate.commit("Hello")
        worker = harness.workers.last
        worker.request_failed.emit("first")
        worker.reply_ready.emit("late reply")
        assert len(harness.turns) == 2
        assert harness.turns[-1].error_note == "first"


class TestMissingApiKey:
    def test_no_request_and_terminal_state(self, keyless):
        keyless.gate.commit("Hello")
        assert keyless.workers.workers == []
        assert keyless.orch.state is RequestState.CONFIGURED_ERROR
        assert keyless.gate.state is GateState.LOCKED
        assert keyless.gate.is_permanently_locked
        assert len(keyless.config_errors) == 1
        assert len(keyless.notifications) == 1
        assert "API key not found" in keyless.notifications[0]

    def test_user_turn_followed_by_error_turn(self, keyless):
        keyless.gate.commit("Hello")
        user, error = keyless.turns
        assert user.raw_text == "Hello"
        assert error.role == ASSISTANT and error.is_error

    def test_persists_across_attempts(self, keyless):
        keyless.gate.commit("Hello")
        keyless.gate.release()
        keyless.gate.commit("Again")
        keyless.orch.submit("Direct")
        assert keyless.workers.workers == []
        assert len(keyless.turns) == 2
        assert len(keyless.notifications) == 1
        assert keyless.orch.state is RequestState.CONFIGURED_ERROR


class TestShutdown:
    def test_late_response_is_discarded(self, harness):
        harness.gate.commit("Hello")
        worker = harness.workers.last
        harness.orch.shutdown()
        assert worker.cancelled
        assert not harness.orch.indicator_active
        assert len(harness.cleared) == 1

        worker.reply_ready.emit("too late")
        assert len(harness.turns) == 1
        assert harness.finished == []

    def test_shutdown_stops_accepting_submissions(self, harness):
        harness.orch.shutdown()
        harness.gate.commit("Hello")
        assert harness.turns == ()
        assert harness.workers.workers == []

    def test_shutdown_is_idempotent(self, harness):
        harness.gate.commit("Hello")
        harness.orch.shutdown()
        harness.orch.shutdown()
        assert len(harness.cleared) == 1
