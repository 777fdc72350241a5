"""
Taskbot

Chat-driven task capture: turns team chat messages into structured tasks,
stages them for confirmation or logs them to a Markdown inbox.

Philosophy:
- A message is one unit of work; failures are reported in-thread, never dropped
- The model is a backend, not a dependency: any failure falls back or is explained
- The inbox is plain Markdown a human can edit by hand

Usage:
    from taskbot.common import load_config, build_invoker
    from taskbot.common.schemas import Task, Category, ChannelPolicy
    from taskbot.capture import TaskPipeline, TaskExtractor, InboxDocument
"""

__version__ = "0.1.0"
