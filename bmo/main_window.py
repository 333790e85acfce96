"""
Main application window for BMO Chatbot.
"""
import argparse
import sys
from pathlib import Path
from typing import List, Optional

from PyQt6.QtCore import QSize
from PyQt6.QtWidgets import QApplication, QMainWindow

from bmo.chat_widget import ChatbotView
from bmo.config import ChatSettings, load_settings
from bmo.constants import (
    APP_NAME, APP_VERSION, CONFIG_PATH, STATUS_MESSAGE_TIMEOUT_MS,
    logger, setup_logging,
)
from bmo.styles import get_application_stylesheet


def _is_dark_mode() -> bool:
    palette = QApplication.palette()
    return palette.window().color().lightness() < 128


class ChatbotWindow(QMainWindow):
    """Top-level window hosting one chat view."""

    def __init__(self, settings: ChatSettings, parent=None):
        super().__init__(parent)
        self.settings = settings
        self.setWindowTitle(f"{settings.display_name} — {APP_NAME}")
        self.resize(QSize(520, 720))

        self.chat_view = ChatbotView(settings, is_dark_fn=_is_dark_mode)
        self.chat_view.notification.connect(self.show_notification)
        self.setCentralWidget(self.chat_view)
        self.statusBar().setSizeGripEnabled(False)
        self.statusBar().showMessage("Ready", STATUS_MESSAGE_TIMEOUT_MS)

    def show_notification(self, text: str):
        """Transient, fire-and-forget message in the status bar."""
        logger.debug(f"Notification: {text}")
        self.statusBar().showMessage(text, STATUS_MESSAGE_TIMEOUT_MS)

    def closeEvent(self, event):
        self.chat_view.shutdown()
        super().closeEvent(event)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="bmo-chatbot",
                                     description=f"{APP_NAME} {APP_VERSION}")
    parser.add_argument("--config", type=Path, default=CONFIG_PATH,
                        help=f"settings file (default: {CONFIG_PATH})")
    parser.add_argument("--log-level",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "NONE"],
                        help="override the logging level from the settings file")
    parser.add_argument("--version", action="version",
                        version=f"%(prog)s {APP_VERSION}")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None):
    """Application entry point."""
    args = parse_args(argv)

    settings = load_settings(args.config)
    log_config = dict(settings.raw)
    if args.log_level:
        log_section = log_config.get("logging")
        log_config["logging"] = {**(log_section if isinstance(log_section, dict) else {}),
                                 "level": args.log_level}
    setup_logging(log_config)

    app = QApplication(sys.argv[:1])
    app.setApplicationName(APP_NAME)
    app.setApplicationVersion(APP_VERSION)
    app.setStyleSheet(get_application_stylesheet(_is_dark_mode()))

    logger.info(f"Application starting (version {APP_VERSION})")

    window = ChatbotWindow(settings)
    window.show()
    if not settings.has_api_key:
        window.show_notification(f"No API key configured in {args.config}")

    exit_code = app.exec()
    logger.info(f"Application exiting (code {exit_code})")
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
