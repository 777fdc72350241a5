"""
Taskbot Schemas

Task records, routing policies and conversation context.
"""

from .task import (
    Task,
    Category,
    Destination,
    Speaker,
    ChannelPolicy,
    ConversationTurn,
    default_policy,
    render_context,
    TITLE_MAX_CHARS,
)
from .templates import (
    render_task_text,
    render_button_value,
    render_staged_blocks,
    render_saved_text,
    render_dismissed_text,
    render_logged_text,
    render_final_blocks,
    SAVE_ACTION_ID,
    DISMISS_ACTION_ID,
    BUTTON_VALUE_MAX_CHARS,
)

__all__ = [
    "Task",
    "Category",
    "Destination",
    "Speaker",
    "ChannelPolicy",
    "ConversationTurn",
    "default_policy",
    "render_context",
    "TITLE_MAX_CHARS",
    "render_task_text",
    "render_button_value",
    "render_staged_blocks",
    "render_saved_text",
    "render_dismissed_text",
    "render_logged_text",
    "render_final_blocks",
    "SAVE_ACTION_ID",
    "DISMISS_ACTION_ID",
    "BUTTON_VALUE_MAX_CHARS",
]
