"""
Capture - Task Capture from Team Chat

Listens to chat messages and turns them into tasks.

Key Components:
- classify: Decides whether a message creates a task, asks for extraction, or is a query
- TaskExtractor: Turns model output into Task objects, with a deterministic fallback
- ChannelRouter: Per-channel destination policy
- InboxDocument: Markdown inbox with dated category sections
- ProgressSignal: Reaction-based working indicator
- TaskPipeline: One message, one unit of work

Rules:
1. A task always has a title; the model can fail, the fallback cannot
2. Staged tasks reach the inbox only when someone presses Save
3. Every indicator that is added is removed
4. Every failure gets a plain-language reply in the thread
"""

from .classifier import Intent, IntentKind, classify, strip_mentions
from .extractor import TaskExtractor, fallback_task
from .inbox import InboxDocument, DocumentError, InsertResult
from .pipeline import TaskPipeline, HandleResult
from .progress import ProgressSignal
from .router import ChannelRouter, RoutingOutcome

__all__ = [
    "Intent",
    "IntentKind",
    "classify",
    "strip_mentions",
    "TaskExtractor",
    "fallback_task",
    "InboxDocument",
    "DocumentError",
    "InsertResult",
    "TaskPipeline",
    "HandleResult",
    "ProgressSignal",
    "ChannelRouter",
    "RoutingOutcome",
]
