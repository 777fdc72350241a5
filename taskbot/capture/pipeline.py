"""
Task Capture Pipeline

One inbound message is one unit of work:

    classify -> (invoke -> extract) -> route -> {stage | log to inbox}

Steps run strictly in order and a failure stops the rest of the unit.
Model and document failures become a plain-language threaded reply; they
never escape to the caller, so other units of work are unaffected.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from pydantic import ValidationError

from ..common.config import DEFAULT_TIMEOUT_MS
from ..common.invoker import InvocationError, ModelInvoker
from ..common.schemas import (
    ChannelPolicy,
    ConversationTurn,
    Task,
    render_context,
    render_dismissed_text,
    render_final_blocks,
    render_logged_text,
    render_saved_text,
    render_staged_blocks,
    render_task_text,
    SAVE_ACTION_ID,
    DISMISS_ACTION_ID,
)
from .chat import ChatClient, ChatError
from .classifier import Intent, IntentKind, classify
from .extractor import CONTEXT_LIMIT, TaskExtractor
from .handlers import Action, Message
from .inbox import DocumentError, InboxDocument
from .progress import ProgressSignal
from .router import ChannelRouter, RoutingOutcome

logger = logging.getLogger("taskbot.capture.pipeline")

GREETING = "Hi! How can I help you today? Start a message with `task:` to capture a task."
NO_TASKS_FOUND = "No actionable tasks found in this conversation."
GENERIC_ERROR = "Sorry, something went wrong while handling that message."

SYSTEM_PROMPT = """You are a helpful assistant in a Slack workspace.
Keep responses concise and well-formatted for Slack (use *bold*, _italic_, and bullet points).
Be friendly but professional. If you don't know something, say so.
For code, use `inline code` or ```code blocks```."""


@dataclass
class HandleResult:
    """Summary of one unit of work"""
    intent: Optional[IntentKind] = None
    tasks: List[Task] = field(default_factory=list)
    outcomes: List[RoutingOutcome] = field(default_factory=list)
    failure: Optional[str] = None


class TaskPipeline:
    """
    Routes chat messages through classification, extraction and routing.

    Collaborators are injected so tests can substitute fakes for the chat
    platform and the model backend.
    """

    def __init__(
        self,
        chat: ChatClient,
        invoker: ModelInvoker,
        router: ChannelRouter,
        inbox: InboxDocument,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        staging_channel: str = "",
    ):
        self._chat = chat
        self._invoker = invoker
        self._router = router
        self._inbox = inbox
        self._timeout_ms = timeout_ms
        self._staging_channel = staging_channel
        self._extractor = TaskExtractor(invoker, timeout_ms)

    @property
    def router(self) -> ChannelRouter:
        return self._router

    @property
    def inbox(self) -> InboxDocument:
        return self._inbox

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def should_handle(self, message: Message, mentions_bot: bool = False) -> bool:
        """
        Decide whether an event starts a unit of work.

        Mentions arrive as app_mention events. Plain message events are
        only handled in DMs and dedicated task channels, and are skipped
        when they mention the bot (the app_mention copy handles those).
        """
        if message.is_bot:
            return False
        if message.event_type == "app_mention":
            return True
        if mentions_bot:
            return False
        if message.is_direct:
            return True
        return self._router.resolve(message.channel).task_channel

    def handle_message(self, message: Message) -> HandleResult:
        """Run one unit of work for an inbound message"""
        result = HandleResult()
        try:
            policy = self._router.resolve(message.channel)
            intent = classify(message.text, policy, has_thread_context=message.in_thread)
            result.intent = intent.kind
            logger.info(
                "Message %s in %s classified as %s",
                message.timestamp, message.channel, intent.kind.value,
            )

            if intent.kind == IntentKind.EMPTY:
                self._reply(message, GREETING)
            elif intent.kind == IntentKind.EXTRACT_FROM_CONTEXT:
                self._extract_from_context(message, policy, result)
            elif intent.creates_task:
                self._create_task(message, intent, policy, result)
            else:
                self._answer(message, intent, result)
        except InvocationError as e:
            result.failure = e.failure.kind.value
            logger.warning("Model invocation failed for %s: %s", message.timestamp, e)
            self._reply(message, e.failure.user_message())
        except DocumentError as e:
            result.failure = e.kind.value
            logger.error("Inbox update failed for %s: %s", message.timestamp, e)
            self._reply(message, e.user_message())
        except Exception:
            result.failure = "error"
            logger.exception("Unexpected error handling message %s", message.timestamp)
            self._reply(message, GENERIC_ERROR)
        return result

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def _create_task(self, message: Message, intent: Intent, policy: ChannelPolicy, result: HandleResult) -> None:
        context = self._thread_context(message) if message.in_thread else None
        progress = ProgressSignal(self._chat, message.channel, message.timestamp)
        with progress.working("thinking", mark_done=True):
            task = self._extractor.parse_single(intent.task_text, context)
            result.tasks.append(task)
            outcome = self._dispatch(task, policy, message)
            result.outcomes.append(outcome)

        if outcome == RoutingOutcome.LOGGED:
            self._reply(message, render_logged_text(task))

    def _extract_from_context(self, message: Message, policy: ChannelPolicy, result: HandleResult) -> None:
        progress = ProgressSignal(self._chat, message.channel, message.timestamp)
        with progress.working("extracting", mark_done=True):
            context = self._conversation(message)
            tasks = self._extractor.parse_multiple(context)
            result.tasks.extend(tasks)
            if not tasks:
                self._reply(message, NO_TASKS_FOUND)
                return
            for task in tasks:
                result.outcomes.append(self._dispatch(task, policy, message))

        staged = result.outcomes.count(RoutingOutcome.STAGED)
        logged = result.outcomes.count(RoutingOutcome.LOGGED)
        lines = [f"Found {len(tasks)} task(s) in this conversation."]
        if staged:
            lines.append(f"{staged} posted for confirmation.")
        if logged:
            lines.append(f"{logged} logged to the inbox:")
            lines.extend(
                f"• *{task.title}* ({task.category.value})"
                for task, outcome in zip(tasks, result.outcomes)
                if outcome == RoutingOutcome.LOGGED
            )
        self._reply(message, "\n".join(lines))

    def _answer(self, message: Message, intent: Intent, result: HandleResult) -> None:
        context = self._thread_context(message) if message.in_thread else []
        prompt = SYSTEM_PROMPT
        if context:
            prompt += f"\n\nConversation so far (oldest first):\n{render_context(context)}"
        prompt += f"\n\nUser: {intent.text}\nAssistant:"

        progress = ProgressSignal(self._chat, message.channel, message.timestamp)
        with progress.working("thinking"):
            answer = self._invoker.invoke(prompt, self._timeout_ms)
        if not answer.ok:
            raise InvocationError(answer.failure)
        self._reply(message, answer.text)

    def _dispatch(self, task: Task, policy: ChannelPolicy, message: Message) -> RoutingOutcome:
        outcome = self._router.route(task, policy)
        if outcome == RoutingOutcome.LOGGED:
            self._inbox.insert(task, message.date, source=policy.display_name)
        else:
            self._stage(task, message)
        logger.info("Task %r %s from %s", task.title, outcome.value, message.channel)
        return outcome

    def _stage(self, task: Task, message: Message) -> str:
        if self._staging_channel:
            channel, thread_ts = self._staging_channel, None
        else:
            channel, thread_ts = message.channel, message.reply_ts
        return self._chat.post_message(
            channel,
            render_task_text(task),
            thread_ts=thread_ts,
            blocks=render_staged_blocks(task),
        )

    # ------------------------------------------------------------------
    # Staged message actions
    # ------------------------------------------------------------------

    def handle_action(self, action: Action) -> Optional[str]:
        """
        Apply a Save/Dismiss click to a staged task message.

        Returns:
            "saved", "dismissed", or None if the action was not applied
        """
        if action.action_id not in (SAVE_ACTION_ID, DISMISS_ACTION_ID):
            logger.debug("Ignoring action %s", action.action_id)
            return None

        try:
            task = Task.model_validate_json(action.value)
        except ValidationError as e:
            logger.warning("Staged message %s has an invalid task payload: %s", action.message_ts, e)
            return None

        if action.action_id == DISMISS_ACTION_ID:
            text = render_dismissed_text(task)
            self._finalize(action, text)
            logger.info("Task %r dismissed by %s", task.title, action.user)
            return "dismissed"

        try:
            self._inbox.insert(
                task,
                _ts_date(action.message_ts),
                source=self._router.display_name(action.channel),
            )
        except DocumentError as e:
            logger.error("Inbox update failed for staged task %r: %s", task.title, e)
            self._post_safely(action.channel, e.user_message(), action.thread_ts or action.message_ts)
            return None

        self._finalize(action, render_saved_text(task))
        logger.info("Task %r saved by %s", task.title, action.user)
        return "saved"

    def _finalize(self, action: Action, text: str) -> None:
        try:
            self._chat.update_message(action.channel, action.message_ts, text, blocks=render_final_blocks(text))
        except ChatError as e:
            logger.warning("Failed to update staged message %s: %s", action.message_ts, e)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _thread_context(self, message: Message) -> List[ConversationTurn]:
        turns = self._chat.fetch_thread(message.channel, message.thread_ts, limit=CONTEXT_LIMIT + 1)
        return _without_request(turns, message)

    def _conversation(self, message: Message) -> List[ConversationTurn]:
        """Thread when in one, otherwise recent channel history"""
        if message.in_thread:
            return self._thread_context(message)
        turns = self._chat.fetch_history(message.channel, limit=CONTEXT_LIMIT + 1)
        return _without_request(turns, message)

    def _reply(self, message: Message, text: str) -> None:
        self._post_safely(message.channel, text, message.reply_ts)

    def _post_safely(self, channel: str, text: str, thread_ts: Optional[str]) -> None:
        try:
            self._chat.post_message(channel, text, thread_ts=thread_ts)
        except ChatError as e:
            logger.error("Failed to post reply in %s: %s", channel, e)


def _without_request(turns: List[ConversationTurn], message: Message) -> List[ConversationTurn]:
    """Drop the triggering message from its own context and bound the length"""
    text = (message.text or "").strip()
    if turns and turns[-1].text == text:
        turns = turns[:-1]
    return turns[-CONTEXT_LIMIT:]


def _ts_date(ts: str) -> date:
    try:
        return datetime.fromtimestamp(float(ts)).date()
    except (TypeError, ValueError):
        return date.today()
