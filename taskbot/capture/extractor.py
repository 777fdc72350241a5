"""
Structured Task Extractor

Turns raw model text into Task records. The model is untrusted for format
compliance, so every path ends in a well-formed result:

- parse_single: JSON object, or a Task synthesized from the user's words
- parse_multiple: JSON array of tasks, or an empty list (never synthesized)
"""

import logging
from typing import List, Optional

from pydantic import ValidationError

from ..common.invoker import InvocationError, ModelInvoker
from ..common.llm_utils import iter_json_regions, parse_json_region
from ..common.schemas import (
    Category,
    ConversationTurn,
    Task,
    TITLE_MAX_CHARS,
    render_context,
)
from ..common.config import DEFAULT_TIMEOUT_MS

logger = logging.getLogger("taskbot.capture.extractor")

# Conversation contexts are bounded to the most recent messages
CONTEXT_LIMIT = 20

_CATEGORY_LIST = ", ".join(f'"{c.value}"' for c in Category)


SINGLE_TASK_PROMPT = """You convert a short chat request into one structured task.

Respond with ONLY a JSON object. No prose, no explanation, no code fences.
The object has exactly these keys:
- "title": short imperative title (max {title_max} chars)
- "description": extra detail from the request, or "" if none
- "category": one of {categories}

Use "General" when no other category clearly fits.
{context_block}
Request:
{text}

JSON:"""


MULTI_TASK_PROMPT = """You extract actionable tasks from a team chat conversation.

Respond with ONLY a JSON array. No prose, no explanation, no code fences.
Each element is an object with exactly these keys:
- "title": short imperative title (max {title_max} chars)
- "description": who/what/when detail from the conversation, or ""
- "category": one of {categories}

Rules:
- Only include concrete, actionable commitments or requests
- Do not invent tasks; skip greetings, opinions and status updates
- If there is nothing actionable, respond with []

Conversation (oldest first):
{conversation}

JSON:"""


def fallback_task(raw_task_text: str) -> Task:
    """
    Deterministic Task for text the model could not structure.

    Whitespace is collapsed. Title is the first 60 characters (trailing
    space trimmed), the rest becomes the description.
    """
    raw = " ".join((raw_task_text or "").split())
    if not raw:
        raw = "Untitled task"
    title = raw[:TITLE_MAX_CHARS]
    description = raw[TITLE_MAX_CHARS:].strip() if len(raw) > TITLE_MAX_CHARS else ""
    return Task(title=title, description=description, category=Category.GENERAL)


class TaskExtractor:
    """Extracts Task records via a model invoker."""

    def __init__(self, invoker: ModelInvoker, timeout_ms: int = DEFAULT_TIMEOUT_MS):
        self._invoker = invoker
        self._timeout_ms = timeout_ms

    def build_single_prompt(
        self,
        raw_task_text: str,
        context: Optional[List[ConversationTurn]] = None,
    ) -> str:
        context_block = ""
        if context:
            context_block = (
                "\nRecent conversation for reference (oldest first):\n"
                f"{render_context(context, limit=CONTEXT_LIMIT)}\n"
            )
        return SINGLE_TASK_PROMPT.format(
            title_max=TITLE_MAX_CHARS,
            categories=_CATEGORY_LIST,
            context_block=context_block,
            text=raw_task_text,
        )

    def build_multiple_prompt(self, context: List[ConversationTurn]) -> str:
        return MULTI_TASK_PROMPT.format(
            title_max=TITLE_MAX_CHARS,
            categories=_CATEGORY_LIST,
            conversation=render_context(context, limit=CONTEXT_LIMIT),
        )

    def parse_single(
        self,
        raw_task_text: str,
        context: Optional[List[ConversationTurn]] = None,
    ) -> Task:
        """
        Structure one task request.

        Args:
            raw_task_text: The user's task text (prefix already removed)
            context: Optional conversation for disambiguation

        Returns:
            Task from the model's JSON object, or the fallback Task
        """
        result = self._invoker.invoke(
            self.build_single_prompt(raw_task_text, context),
            self._timeout_ms,
        )
        if not result.ok:
            logger.warning(
                "Single extraction invocation failed (%s), using fallback",
                result.failure.kind.value,
            )
            return fallback_task(raw_task_text)

        task = self.parse_single_response(result.text)
        if task is None:
            logger.info("No usable JSON object in model output, using fallback")
            return fallback_task(raw_task_text)
        return task

    def parse_multiple(self, context: List[ConversationTurn]) -> List[Task]:
        """
        Extract every actionable task from a conversation.

        Args:
            context: Conversation turns, most recent last

        Returns:
            List of Tasks, possibly empty

        Raises:
            InvocationError: if the model could not be invoked
        """
        if not context:
            return []

        result = self._invoker.invoke(self.build_multiple_prompt(context), self._timeout_ms)
        if not result.ok:
            raise InvocationError(result.failure)
        return self.parse_multiple_response(result.text)

    def parse_single_response(self, raw: str) -> Optional[Task]:
        """Parse the first JSON object in ``raw`` into a Task (None if unusable)."""
        data = parse_json_region(raw, "{")
        if not isinstance(data, dict):
            return None
        return self._to_task(data)

    def parse_multiple_response(self, raw: str) -> List[Task]:
        """Parse the first JSON array of task objects in ``raw``; invalid items are skipped."""
        data = next(
            (region for region in iter_json_regions(raw, "[") if _is_task_array(region)),
            None,
        )
        if data is None:
            logger.info("No usable JSON array in model output")
            return []

        tasks = []
        for item in data:
            if not isinstance(item, dict):
                continue
            task = self._to_task(item)
            if task is not None:
                tasks.append(task)
        if len(tasks) < len(data):
            logger.debug("Skipped %d invalid task item(s)", len(data) - len(tasks))
        return tasks

    def _to_task(self, data: dict) -> Optional[Task]:
        try:
            return Task(
                title=data.get("title", ""),
                description=data.get("description", ""),
                category=data.get("category", Category.GENERAL.value),
            )
        except ValidationError:
            return None


def _is_task_array(value) -> bool:
    return isinstance(value, list) and (not value or any(isinstance(item, dict) for item in value))
