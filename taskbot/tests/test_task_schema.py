"""Tests for Task records and Slack templates."""

import json
import pytest
from pydantic import ValidationError

from taskbot.common.schemas import (
    Category,
    ChannelPolicy,
    ConversationTurn,
    Destination,
    Speaker,
    Task,
    default_policy,
    render_context,
    render_staged_blocks,
    render_saved_text,
    render_dismissed_text,
    render_button_value,
    BUTTON_VALUE_MAX_CHARS,
    SAVE_ACTION_ID,
    DISMISS_ACTION_ID,
)


class TestCategory:
    @pytest.mark.parametrize("raw,expected", [
        ("Work", Category.WORK),
        ("work", Category.WORK),
        ("  PERSONAL ", Category.PERSONAL),
        ("projects", Category.PROJECTS),
        ("Errands", Category.GENERAL),
        ("", Category.GENERAL),
        (None, Category.GENERAL),
    ])
    def test_resolve(self, raw, expected):
        assert Category.resolve(raw) == expected


class TestTask:
    def test_title_is_truncated(self):
        task = Task(title="x" * 100)
        assert len(task.title) == 60

    def test_title_whitespace_collapsed(self):
        task = Task(title="  Fix   the\nlogin bug ")
        assert task.title == "Fix the login bug"

    def test_empty_title_rejected(self):
        with pytest.raises(ValidationError):
            Task(title="   ")

    def test_unknown_category_maps_to_general(self):
        assert Task(title="Buy milk", category="Groceries").category == Category.GENERAL

    def test_none_description(self):
        assert Task(title="A", description=None).description == ""

    def test_json_round_trip(self):
        task = Task(title="Ship it", description="Friday", category="Work")
        assert Task.model_validate_json(task.model_dump_json()) == task


class TestPolicy:
    def test_default_policy_stages(self):
        policy = default_policy("C42")
        assert policy.channel_id == "C42"
        assert policy.destination == Destination.CONFIRM_AND_STAGE
        assert policy.task_channel is False

    def test_configured_policy_is_task_channel(self):
        assert ChannelPolicy(channel_id="C1").task_channel is True


class TestRenderContext:
    def test_labels_and_limit(self):
        turns = [
            ConversationTurn(speaker=Speaker.USER, text="one"),
            ConversationTurn(speaker=Speaker.ASSISTANT, text="two"),
            ConversationTurn(speaker=Speaker.USER, text="three"),
        ]
        assert render_context(turns) == "User: one\nAssistant: two\nUser: three"
        assert render_context(turns, limit=1) == "User: three"


class TestTemplates:
    def test_staged_blocks_carry_task(self):
        task = Task(title="Review PR", description="#123", category="Work")
        blocks = render_staged_blocks(task)
        buttons = blocks[1]["elements"]
        assert [b["action_id"] for b in buttons] == [SAVE_ACTION_ID, DISMISS_ACTION_ID]
        for button in buttons:
            assert json.loads(button["value"]) == {
                "title": "Review PR", "description": "#123", "category": "Work",
            }
        assert "Review PR" in blocks[0]["text"]["text"]

    def test_final_texts(self):
        task = Task(title="Review PR", category="Work")
        assert render_saved_text(task) == ":white_check_mark: Saved to inbox: *Review PR* (Work)"
        assert render_dismissed_text(task) == ":x: Dismissed: ~Review PR~"

    def test_long_description_fits_button_value(self):
        task = Task(title="t", description="x" * 3000, category="Work")
        blocks = render_staged_blocks(task)
        for button in blocks[1]["elements"]:
            assert len(button["value"]) <= BUTTON_VALUE_MAX_CHARS
            restored = Task.model_validate_json(button["value"])
            assert restored.title == "t"
            assert restored.category == Category.WORK
            assert restored.description.startswith("xxx")
            assert restored.description.endswith("...")
        assert len(blocks[0]["text"]["text"]) <= 3000

    def test_escaped_description_fits_button_value(self):
        task = Task(title="quotes", description='"\\' * 1500)
        value = render_button_value(task)
        assert len(value) <= BUTTON_VALUE_MAX_CHARS
        assert Task.model_validate_json(value).title == "quotes"

    def test_short_payload_untouched(self):
        task = Task(title="Review PR", description="#123")
        assert render_button_value(task) == task.model_dump_json()
