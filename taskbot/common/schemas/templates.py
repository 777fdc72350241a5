"""
Staged Message Templates

Renders Tasks to Slack Block Kit for the confirmation post.
The button value carries the serialized Task, so the message itself is the
only state a staged task needs.
"""

from typing import TYPE_CHECKING, Any, Dict, List

if TYPE_CHECKING:
    from .task import Task


SAVE_ACTION_ID = "task_save"
DISMISS_ACTION_ID = "task_dismiss"

# Slack Block Kit limits
BUTTON_VALUE_MAX_CHARS = 2000
SECTION_TEXT_MAX_CHARS = 3000
ELLIPSIS = "..."

STAGED_TEMPLATE = """*New task* ({category})
*{title}*{description_line}"""

SAVED_TEMPLATE = ":white_check_mark: Saved to inbox: *{title}* ({category})"

DISMISSED_TEMPLATE = ":x: Dismissed: ~{title}~"

LOGGED_TEMPLATE = ":inbox_tray: Logged to inbox: *{title}* ({category})"


def _category(task: "Task") -> str:
    return task.category.value if hasattr(task.category, "value") else str(task.category)


def render_task_text(task: "Task") -> str:
    """Plain text used as the notification fallback for the staged post"""
    description_line = f"\n{task.description}" if task.description else ""
    return STAGED_TEMPLATE.format(
        category=_category(task),
        title=task.title,
        description_line=description_line,
    )


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit - len(ELLIPSIS)].rstrip() + ELLIPSIS


def render_button_value(task: "Task") -> str:
    """
    Task as JSON, within the button value limit.

    Only the description is shortened; JSON escaping can make the payload
    longer than the raw text, so the cut repeats until it fits.
    """
    payload = task.model_dump_json()
    description = task.description
    while len(payload) > BUTTON_VALUE_MAX_CHARS and description:
        overflow = len(payload) - BUTTON_VALUE_MAX_CHARS
        keep = max(len(description) - overflow - len(ELLIPSIS), 0)
        description = description[:keep].rstrip() + ELLIPSIS if keep else ""
        payload = task.model_copy(update={"description": description}).model_dump_json()
    return payload


def render_staged_blocks(task: "Task") -> List[Dict[str, Any]]:
    """
    Render the confirmation post with Save/Dismiss buttons.

    Both buttons carry the same payload: the Task as JSON.
    """
    payload = render_button_value(task)
    return [
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": _truncate(render_task_text(task), SECTION_TEXT_MAX_CHARS)},
        },
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "action_id": SAVE_ACTION_ID,
                    "style": "primary",
                    "text": {"type": "plain_text", "text": "Save"},
                    "value": payload,
                },
                {
                    "type": "button",
                    "action_id": DISMISS_ACTION_ID,
                    "text": {"type": "plain_text", "text": "Dismiss"},
                    "value": payload,
                },
            ],
        },
    ]


def render_saved_text(task: "Task") -> str:
    return SAVED_TEMPLATE.format(title=task.title, category=_category(task))


def render_dismissed_text(task: "Task") -> str:
    return DISMISSED_TEMPLATE.format(title=task.title)


def render_logged_text(task: "Task") -> str:
    return LOGGED_TEMPLATE.format(title=task.title, category=_category(task))


def render_final_blocks(text: str) -> List[Dict[str, Any]]:
    """Terminal state of a staged post: same text, buttons removed"""
    return [{"type": "section", "text": {"type": "mrkdwn", "text": text}}]
