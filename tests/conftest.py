"""
Shared fixtures: an offscreen QApplication and a fake completion worker.
"""
import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest
from PyQt6.QtCore import QObject, pyqtSignal
from PyQt6.QtWidgets import QApplication

from bmo.config import ChatSettings


class FakeWorker(QObject):
    """Stands in for CompletionWorker; the test decides when it answers."""

    reply_ready = pyqtSignal(str)
    request_failed = pyqtSignal(str)

    def __init__(self, settings, context):
        super().__init__()
        self.settings = settings
        self.context = context
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def isRunning(self):
        return False


class WorkerRecorder:
    """Worker factory that remembers every worker it built."""

    def __init__(self):
        self.workers = []

    def __call__(self, settings, context):
        worker = FakeWorker(settings, context)
        self.workers.append(worker)
        return worker

    @property
    def last(self) -> FakeWorker:
        return self.workers[-1]


@pytest.fixture(scope="session")
def qapp():
    app = QApplication.instance() or QApplication([])
    yield app


@pytest.fixture
def workers():
    return WorkerRecorder()


@pytest.fixture
def settings():
    return ChatSettings(api_key="sk-test", display_name="BMO",
                        model="gpt-4", max_tokens=256, temperature=0.5,
                        system_role="Be brief.")


class FakeClipboard:
    def __init__(self, fail: bool = False):
        self.text = None
        self._fail = fail

    def setText(self, text):
        if self._fail:
            raise RuntimeError("clipboard is locked")
        self.text = text


@pytest.fixture
def clipboard():
    return FakeClipboard()


@pytest.fixture
def failing_clipboard():
    return FakeClipboard(fail=True)
