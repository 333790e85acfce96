"""
Chat transcript — the ordered, append-only log of turns for one session.

Nothing here is persisted.  A ``Session`` lives exactly as long as the chat
view that created it; the orchestrator is handed the session and is the only
code that appends to its transcript.

The upstream context is the flattened transcript: the raw text of every turn
that carries model-visible text, oldest first, one per line.  No windowing
is applied, so the context grows with the conversation.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional, Tuple

from bmo.config import ChatSettings

USER = "user"
ASSISTANT = "assistant"


@dataclass(eq=False)
class Turn:
    """One exchange unit: a user message or an assistant reply/error.

    ``handle`` is the UI node the view created for this turn.  It is set once
    at creation time so later updates never have to look the node up.
    """
    role: str
    raw_text: str = ""
    rendered: Optional[Any] = None
    error_note: Optional[str] = None
    handle: Optional[Any] = field(default=None, repr=False)

    @property
    def is_error(self) -> bool:
        return self.error_note is not None

    @property
    def is_resolved(self) -> bool:
        return self.rendered is not None or self.error_note is not None

    def resolve(self, raw_text: str, rendered: Any):
        """Attach the rendered reply.  A turn can be resolved only once."""
        if self.is_resolved:
            raise RuntimeError("Turn already resolved")
        self.raw_text = raw_text
        self.rendered = rendered

    def fail(self, note: str):
        """Attach an error annotation in place of a reply."""
        if self.is_resolved:
            raise RuntimeError("Turn already resolved")
        self.error_note = note


class TranscriptStore:
    """Append-only sequence of turns."""

    def __init__(self):
        self._turns: List[Turn] = []

    def append(self, turn: Turn):
        self._turns.append(turn)

    @property
    def turns(self) -> Tuple[Turn, ...]:
        return tuple(self._turns)

    @property
    def last(self) -> Optional[Turn]:
        return self._turns[-1] if self._turns else None

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))

    def serialize(self) -> str:
        """Flatten the transcript into the context sent upstream.

        Error-bearing turns carry no model text and are skipped.
        """
        return "".join(f"{turn.raw_text}\n" for turn in self._turns
                       if not turn.is_error)

    def to_markdown(self, assistant_name: str = "Assistant") -> str:
        """Export the transcript as markdown (used by *Copy chat*)."""
        lines: list[str] = []
        for turn in self._turns:
            if turn.role == USER:
                lines.append("**You:**")
                lines.append(turn.raw_text)
            elif turn.is_error:
                lines.append("**ERROR:**")
                lines.append(f"*{turn.error_note}*")
            else:
                lines.append(f"**{assistant_name}:**")
                lines.append(turn.raw_text)
            lines.append("")
        return "\n".join(lines).rstrip() + "\n" if lines else ""


class Session:
    """State of one open chat view: its transcript and its settings."""

    def __init__(self, settings: ChatSettings,
                 transcript: Optional[TranscriptStore] = None):
        self.settings = settings
        self.transcript = transcript if transcript is not None else TranscriptStore()
