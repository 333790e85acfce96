"""
BMO Chatbot package.

A PyQt6 chat window for OpenAI-style chat-completion endpoints, split into
focused modules by responsibility.
"""


def main():
    """Convenience entry point — delegates to bmo.main_window.main()."""
    from bmo.main_window import main as _main
    _main()


__all__ = ["main"]
