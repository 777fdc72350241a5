"""
Base Handler

Abstract base class for source-specific event handlers.
Provides a common interface for converting events to Messages.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Dict, Any
from datetime import datetime, date


@dataclass
class Message:
    """
    Common message format for all sources.

    This is the standardized format the pipeline works with,
    regardless of the original chat platform.
    """
    text: str
    user: str
    channel: str
    source: str  # "slack"
    timestamp: str
    thread_ts: Optional[str] = None
    event_type: str = "message"  # "app_mention" or "message"
    channel_type: str = ""  # "channel", "group", "im", "mpim"
    is_bot: bool = False
    mentions: list = field(default_factory=list)
    raw_data: Optional[Dict[str, Any]] = None

    @property
    def datetime(self) -> Optional[datetime]:
        """Parse timestamp to datetime"""
        try:
            return datetime.fromtimestamp(float(self.timestamp))
        except (ValueError, TypeError):
            return None

    @property
    def date(self) -> date:
        """Local date of the message (today if the timestamp is unusable)"""
        dt = self.datetime
        return dt.date() if dt else date.today()

    @property
    def reply_ts(self) -> str:
        """Thread to reply into: the existing thread, or start one on this message"""
        return self.thread_ts or self.timestamp

    @property
    def in_thread(self) -> bool:
        return self.thread_ts is not None and self.thread_ts != self.timestamp

    @property
    def is_direct(self) -> bool:
        return self.channel_type == "im"


@dataclass
class Action:
    """A button click on a posted message"""
    action_id: str
    value: str
    user: str
    channel: str
    message_ts: str
    thread_ts: Optional[str] = None
    raw_data: Optional[Dict[str, Any]] = None


class BaseHandler(ABC):
    """
    Abstract base class for source handlers.

    Each handler must implement:
    - parse_event: Convert raw event to Message
    - verify_signature: Verify webhook signature (if applicable)
    """

    def __init__(self, source_name: str):
        """
        Initialize handler.

        Args:
            source_name: Name of the source (e.g., "slack")
        """
        self.source_name = source_name

    @abstractmethod
    def parse_event(self, raw_data: Dict[str, Any]) -> Optional[Message]:
        """
        Parse raw event data into a Message.

        Args:
            raw_data: Raw event data from the source

        Returns:
            Message object or None if event should be ignored
        """

    @abstractmethod
    def verify_signature(
        self,
        body: bytes,
        signature: str,
        timestamp: str
    ) -> bool:
        """
        Verify the webhook signature.

        Args:
            body: Raw request body
            signature: Signature from headers
            timestamp: Timestamp from headers

        Returns:
            True if signature is valid
        """

    def should_process(self, message: Message) -> bool:
        """
        Check if message should be processed.

        Automated senders are always skipped to prevent reply loops.
        """
        if message.is_bot:
            return False
        return True
