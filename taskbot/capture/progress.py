"""
Progress Signal

Two-state indicator on the triggering message: a reaction is added while
the model works and removed when the branch finishes, on every exit path.
One indicator kind at a time per message.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from .chat import ChatClient

logger = logging.getLogger("taskbot.capture.progress")

# Indicator kind -> reaction name
INDICATORS = {
    "thinking": "thinking_face",
    "extracting": "mag",
}
DONE_REACTION = "white_check_mark"


class ProgressSignal:
    """Working/done indicator for one triggering message."""

    def __init__(self, chat: ChatClient, channel: str, ts: str):
        self._chat = chat
        self._channel = channel
        self._ts = ts
        self._active: Optional[str] = None

    @property
    def active(self) -> Optional[str]:
        return self._active

    @contextmanager
    def working(self, kind: str = "thinking", mark_done: bool = False) -> Iterator[None]:
        """
        Show the indicator for the duration of the block.

        Args:
            kind: Indicator kind ("thinking" or "extracting")
            mark_done: Add a completion reaction when the block succeeds
        """
        if kind not in INDICATORS:
            raise ValueError(f"Unknown indicator kind: {kind}")
        if self._active is not None:
            raise RuntimeError(f"Indicator '{self._active}' already active on {self._ts}")

        reaction = INDICATORS[kind]
        self._active = kind
        self._react("add", reaction)
        succeeded = False
        try:
            yield
            succeeded = True
        finally:
            self._active = None
            self._react("remove", reaction)
            if succeeded and mark_done:
                self._react("add", DONE_REACTION)

    def _react(self, action: str, name: str) -> None:
        # A failed reaction must not abort the unit of work
        try:
            if action == "add":
                self._chat.add_reaction(self._channel, self._ts, name)
            else:
                self._chat.remove_reaction(self._channel, self._ts, name)
        except Exception as e:
            logger.warning("Failed to %s reaction %s on %s: %s", action, name, self._ts, e)
