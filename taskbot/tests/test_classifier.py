"""Tests for message classification."""

import pytest

from taskbot.capture.classifier import IntentKind, classify, strip_mentions, match_task_prefix
from taskbot.common.schemas import ChannelPolicy, default_policy

PLAIN = default_policy("C-GENERAL")
TASK_CHANNEL = ChannelPolicy(channel_id="C-TASKS", display_name="tasks")


class TestStripMentions:
    def test_removes_tokens(self):
        assert strip_mentions("<@U123ABC> task: fix it") == "task: fix it"

    def test_named_mention(self):
        assert strip_mentions("hi <@W99|bot>  there") == "hi there"

    def test_only_mention(self):
        assert strip_mentions("<@U123ABC>   ") == ""


class TestClassify:
    def test_empty_after_mention(self):
        assert classify("<@U123ABC>", PLAIN).kind == IntentKind.EMPTY

    def test_explicit_prefix(self):
        intent = classify("<@U123ABC> task: fix login bug", PLAIN)
        assert intent.kind == IntentKind.EXPLICIT_TASK_CREATION
        assert intent.task_text == "fix login bug"
        assert intent.creates_task

    @pytest.mark.parametrize("text,task_text", [
        ("TODO: call the bank", "call the bank"),
        ("to-do:  renew passport", "renew passport"),
        ("New task: draft roadmap", "draft roadmap"),
        ("remind me to water the plants", "water the plants"),
    ])
    def test_prefix_variants(self, text, task_text):
        intent = classify(text, PLAIN)
        assert intent.kind == IntentKind.EXPLICIT_TASK_CREATION
        assert intent.task_text == task_text

    def test_prefix_without_text_is_empty(self):
        assert classify("task:   ", PLAIN).kind == IntentKind.EMPTY

    def test_prefix_requires_colon(self):
        assert match_task_prefix("task force meeting today") is None
        assert classify("task force meeting today", PLAIN).kind == IntentKind.PLAIN_QUERY

    @pytest.mark.parametrize("text", [
        "extract tasks from this thread",
        "<@U123ABC> can you pull out the action items?",
        "please list the todos",
        "what are the tasks in this conversation?",
        "any next steps from this discussion",
    ])
    def test_extract_requests(self, text):
        assert classify(text, PLAIN).kind == IntentKind.EXTRACT_FROM_CONTEXT

    def test_extract_wins_over_prefix(self):
        intent = classify("todo: extract the tasks from this thread", PLAIN)
        assert intent.kind == IntentKind.EXTRACT_FROM_CONTEXT

    def test_task_mentioning_tasks_is_not_extraction(self):
        intent = classify("task: find a fix for the tasks queue", PLAIN)
        assert intent.kind == IntentKind.EXPLICIT_TASK_CREATION
        assert intent.task_text == "find a fix for the tasks queue"

    def test_thread_followups_need_thread(self):
        assert classify("add these as tasks", PLAIN).kind == IntentKind.PLAIN_QUERY
        assert classify(
            "add these as tasks", PLAIN, has_thread_context=True,
        ).kind == IntentKind.EXTRACT_FROM_CONTEXT

    def test_task_channel_implicit(self):
        intent = classify("Book flights for the offsite", TASK_CHANNEL)
        assert intent.kind == IntentKind.IMPLICIT_TASK_CREATION
        assert intent.task_text == "Book flights for the offsite"

    def test_task_channel_prefix_still_stripped(self):
        intent = classify("todo: book flights", TASK_CHANNEL)
        assert intent.kind == IntentKind.EXPLICIT_TASK_CREATION
        assert intent.task_text == "book flights"

    def test_plain_query(self):
        intent = classify("<@U123ABC> what's the capital of France?", PLAIN)
        assert intent.kind == IntentKind.PLAIN_QUERY
        assert intent.text == "what's the capital of France?"
        assert not intent.creates_task
