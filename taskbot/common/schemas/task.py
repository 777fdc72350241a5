"""
Task Schemas

Core records that flow through the capture pipeline.

Core principle: a Task is always well-formed. The title is never empty,
and the category always resolves to one of the four known values.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

TITLE_MAX_CHARS = 60


# ============================================================================
# Enums
# ============================================================================

class Category(str, Enum):
    """Planning categories for captured tasks"""
    WORK = "Work"
    PERSONAL = "Personal"
    PROJECTS = "Projects"
    GENERAL = "General"

    @classmethod
    def resolve(cls, value) -> "Category":
        """Map any input to a known category (unknown -> General)"""
        if isinstance(value, Category):
            return value
        text = str(value or "").strip().lower()
        for category in cls:
            if category.value.lower() == text:
                return category
        return cls.GENERAL


class Destination(str, Enum):
    """Where a task goes once it has been extracted"""
    CONFIRM_AND_STAGE = "confirm_and_stage"
    DIRECT_LOG = "direct_log"


class Speaker(str, Enum):
    """Who said a line of conversation"""
    USER = "user"
    ASSISTANT = "assistant"


# ============================================================================
# Models
# ============================================================================

class Task(BaseModel):
    """A structured actionable item extracted from chat text"""
    title: str = Field(..., description="Short title (1-60 chars)")
    description: str = Field(default="", description="Optional detail")
    category: Category = Field(default=Category.GENERAL)

    @field_validator("title", mode="before")
    @classmethod
    def _clean_title(cls, value) -> str:
        title = " ".join(str(value or "").split())
        if not title:
            raise ValueError("title must not be empty")
        return title[:TITLE_MAX_CHARS].rstrip()

    @field_validator("description", mode="before")
    @classmethod
    def _clean_description(cls, value) -> str:
        if value is None:
            return ""
        return " ".join(str(value).split())

    @field_validator("category", mode="before")
    @classmethod
    def _resolve_category(cls, value) -> Category:
        return Category.resolve(value)


class ChannelPolicy(BaseModel):
    """Routing policy for one chat channel"""
    channel_id: str
    display_name: str = "Slack"
    destination: Destination = Destination.CONFIRM_AND_STAGE
    task_channel: bool = True


class ConversationTurn(BaseModel):
    """One message of a conversation context"""
    speaker: Speaker
    text: str


def default_policy(channel_id: str = "") -> ChannelPolicy:
    """Policy used for channels missing from the routing table"""
    return ChannelPolicy(
        channel_id=channel_id,
        display_name="Slack",
        destination=Destination.CONFIRM_AND_STAGE,
        task_channel=False,
    )


def render_context(turns: List[ConversationTurn], limit: Optional[int] = None) -> str:
    """Render a conversation as 'User: ...' / 'Assistant: ...' lines"""
    if limit is not None:
        turns = turns[-limit:]
    lines = []
    for turn in turns:
        label = "User" if turn.speaker == Speaker.USER else "Assistant"
        lines.append(f"{label}: {turn.text}")
    return "\n".join(lines)
