"""
Background QThread worker for the completion request.
"""
from typing import Callable, Optional

from PyQt6.QtCore import QThread, pyqtSignal

from bmo.completions import fetch_completion
from bmo.config import ChatSettings
from bmo.constants import logger
from bmo.errors import ChatError


class CompletionWorker(QThread):
    """Runs one completion request off the GUI thread.

    Exactly one of ``reply_ready`` / ``request_failed`` is emitted, unless the
    worker was cancelled first, in which case the result is dropped.  There
    is no way to abort the HTTP call itself; ``cancel()`` only guarantees
    that a late response never reaches a torn-down view.
    """

    reply_ready = pyqtSignal(str)      # reply text
    request_failed = pyqtSignal(str)   # human-readable reason

    def __init__(self, settings: ChatSettings, context: str,
                 fetch: Callable[[ChatSettings, str], str] = fetch_completion,
                 parent=None):
        super().__init__(parent)
        self.settings = settings
        self.context = context
        self._fetch = fetch
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        logger.debug("CompletionWorker.cancel: result will be discarded")
        self._cancelled = True

    def run(self):
        reply: Optional[str] = None
        error: Optional[str] = None
        try:
            reply = self._fetch(self.settings, self.context)
        except ChatError as e:
            error = str(e)
        except Exception as e:
            logger.error(f"CompletionWorker.run: unexpected failure: {e}", exc_info=True)
            error = f"Unexpected error: {e}"

        if self._cancelled:
            logger.info("CompletionWorker.run: cancelled, discarding result")
            return
        if error is not None:
            logger.warning(f"CompletionWorker.run: request failed: {error}")
            self.request_failed.emit(error)
        else:
            logger.debug(f"CompletionWorker.run: reply received ({len(reply)} chars)")
            self.reply_ready.emit(reply)
