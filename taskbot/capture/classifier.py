"""
Message Classifier

Decides which pipeline branch handles an inbound chat message.

Decision order (first match wins):
1. Empty after removing mention tokens      -> EMPTY
2. "Extract tasks from this conversation"   -> EXTRACT_FROM_CONTEXT
3. Explicit prefix ("task:", "todo:", ...)  -> EXPLICIT_TASK_CREATION
4. Dedicated task channel                   -> IMPLICIT_TASK_CREATION
5. Anything else                            -> PLAIN_QUERY

Extraction phrasing is checked before prefixes so that "todo: extract the
tasks from this thread" style requests are not captured as a single task.
Inside a task channel the prefix check still runs first; the outcome is the
same task either way.
"""

import re
from dataclasses import dataclass
from enum import Enum

from ..common.schemas import ChannelPolicy

# Slack mentions format: <@U12345678> or <@U12345678|name>
MENTION_PATTERN = re.compile(r"<@[UW][A-Z0-9]+(?:\|[^>]*)?>")

_TASK_NOUNS = r"(?:tasks?|todos?|to-dos?|action items?|next steps)"

# "extract tasks from this conversation" phrasing family
EXTRACT_PATTERNS = [
    re.compile(
        r"^(?:(?:hey|ok|okay|please|can you|could you|would you)[\s,]+)*"
        r"(?:extract|pull out|pull|find|list|grab|collect|capture|get)\b.{0,30}?\b" + _TASK_NOUNS + r"\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b" + _TASK_NOUNS + r"\b.{0,20}?\b(?:from|in)\s+(?:this|the)\s+"
        r"(?:thread|conversation|channel|discussion|chat)\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(?:what are|are there|any)\b.{0,30}?\b" + _TASK_NOUNS + r"\b"
        r".{0,30}?\b(?:here|this|thread|conversation|channel|discussion)\b",
        re.IGNORECASE,
    ),
]

# Short follow-ups that only make sense inside a thread
THREAD_EXTRACT_PATTERNS = [
    re.compile(
        r"^(?:please\s+)?(?:add|save|turn|make)\s+(?:this|these|that|those|it)\b.{0,30}?\b(?:tasks?|todos?)\b",
        re.IGNORECASE,
    ),
]

# Explicit task prefixes; the remainder is the task text
PREFIX_PATTERNS = [
    re.compile(r"^(?:new task|add task|task|todo|to-do|to do)\s*:\s*(?P<rest>.*)$", re.IGNORECASE | re.DOTALL),
    re.compile(r"^remind me to\b\s*(?P<rest>.*)$", re.IGNORECASE | re.DOTALL),
]


class IntentKind(str, Enum):
    """Pipeline branch for a message"""
    EMPTY = "empty"
    EXTRACT_FROM_CONTEXT = "extract_from_context"
    EXPLICIT_TASK_CREATION = "explicit_task_creation"
    IMPLICIT_TASK_CREATION = "implicit_task_creation"
    PLAIN_QUERY = "plain_query"


@dataclass
class Intent:
    """Result of classification"""
    kind: IntentKind
    task_text: str = ""
    text: str = ""  # message text with mentions removed

    @property
    def creates_task(self) -> bool:
        return self.kind in (IntentKind.EXPLICIT_TASK_CREATION, IntentKind.IMPLICIT_TASK_CREATION)


def strip_mentions(text: str) -> str:
    """Remove mention tokens and surrounding whitespace"""
    return " ".join(MENTION_PATTERN.sub(" ", text or "").split())


def is_extract_request(text: str, has_thread_context: bool = False) -> bool:
    if any(p.search(text) for p in EXTRACT_PATTERNS):
        return True
    if has_thread_context and any(p.search(text) for p in THREAD_EXTRACT_PATTERNS):
        return True
    return False


def match_task_prefix(text: str):
    """Return the task text after an explicit prefix, or None if no prefix"""
    for pattern in PREFIX_PATTERNS:
        match = pattern.match(text)
        if match:
            return (match.group("rest") or "").strip()
    return None


def classify(text: str, policy: ChannelPolicy, has_thread_context: bool = False) -> Intent:
    """
    Classify a message. Pure: no I/O, no model calls.

    Args:
        text: Raw message text (may contain mention tokens)
        policy: Routing policy of the source channel
        has_thread_context: True when the message is a thread reply

    Returns:
        Intent with the branch and, for task creation, the task text
    """
    clean = strip_mentions(text)
    if not clean:
        return Intent(kind=IntentKind.EMPTY)

    if is_extract_request(clean, has_thread_context):
        return Intent(kind=IntentKind.EXTRACT_FROM_CONTEXT, text=clean)

    task_text = match_task_prefix(clean)
    if task_text is not None:
        if not task_text:
            return Intent(kind=IntentKind.EMPTY, text=clean)
        return Intent(kind=IntentKind.EXPLICIT_TASK_CREATION, task_text=task_text, text=clean)

    if policy.task_channel:
        return Intent(kind=IntentKind.IMPLICIT_TASK_CREATION, task_text=clean, text=clean)

    return Intent(kind=IntentKind.PLAIN_QUERY, text=clean)
