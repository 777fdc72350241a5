"""
Source Handlers

Handlers convert platform-specific events to the common Message format
and button clicks to Actions.

Available Handlers:
- SlackHandler: Slack Events API and interactivity payloads
"""

from .base import BaseHandler, Message, Action
from .slack import SlackHandler

__all__ = [
    "BaseHandler",
    "Message",
    "Action",
    "SlackHandler",
]
