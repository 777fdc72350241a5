"""
Chat Client

Narrow outbound interface to the chat platform. The pipeline only talks to
this protocol; SlackChatClient implements it with slack_sdk.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from ..common.schemas import ConversationTurn, Speaker

logger = logging.getLogger("taskbot.capture.chat")


class ChatError(Exception):
    """A chat platform call failed"""


class ChatClient(Protocol):
    def post_message(
        self,
        channel: str,
        text: str,
        thread_ts: Optional[str] = None,
        blocks: Optional[List[Dict[str, Any]]] = None,
    ) -> str: ...

    def update_message(
        self,
        channel: str,
        ts: str,
        text: str,
        blocks: Optional[List[Dict[str, Any]]] = None,
    ) -> None: ...

    def add_reaction(self, channel: str, ts: str, name: str) -> None: ...

    def remove_reaction(self, channel: str, ts: str, name: str) -> None: ...

    def fetch_thread(self, channel: str, thread_ts: str, limit: int = 20) -> List[ConversationTurn]: ...

    def fetch_history(self, channel: str, limit: int = 20) -> List[ConversationTurn]: ...


def _to_turns(messages: List[Dict[str, Any]], bot_user_id: str = "") -> List[ConversationTurn]:
    """Slack messages (oldest first) -> conversation turns"""
    turns = []
    for m in messages:
        text = (m.get("text") or "").strip()
        if not text:
            continue
        is_assistant = bool(m.get("bot_id")) or (bot_user_id and m.get("user") == bot_user_id)
        turns.append(ConversationTurn(
            speaker=Speaker.ASSISTANT if is_assistant else Speaker.USER,
            text=text,
        ))
    return turns


class SlackChatClient:
    """ChatClient over the Slack Web API"""

    def __init__(self, token: str, bot_user_id: str = "", client: Optional[WebClient] = None):
        self._client = client or WebClient(token=token)
        self._bot_user_id = bot_user_id

    @property
    def bot_user_id(self) -> str:
        """Bot user id, looked up once via auth.test when not configured"""
        if not self._bot_user_id:
            try:
                self._bot_user_id = self._client.auth_test().get("user_id", "")
            except SlackApiError as e:
                logger.warning("auth.test failed: %s", e.response.get("error"))
        return self._bot_user_id

    def post_message(self, channel, text, thread_ts=None, blocks=None) -> str:
        kwargs = {"channel": channel, "text": text}
        if thread_ts:
            kwargs["thread_ts"] = thread_ts
        if blocks:
            kwargs["blocks"] = blocks
        try:
            response = self._client.chat_postMessage(**kwargs)
        except SlackApiError as e:
            raise ChatError(f"chat.postMessage failed: {e.response.get('error')}") from e
        return response.get("ts", "")

    def update_message(self, channel, ts, text, blocks=None) -> None:
        try:
            self._client.chat_update(channel=channel, ts=ts, text=text, blocks=blocks or [])
        except SlackApiError as e:
            raise ChatError(f"chat.update failed: {e.response.get('error')}") from e

    def add_reaction(self, channel, ts, name) -> None:
        try:
            self._client.reactions_add(channel=channel, timestamp=ts, name=name)
        except SlackApiError as e:
            if e.response.get("error") == "already_reacted":
                return
            raise ChatError(f"reactions.add failed: {e.response.get('error')}") from e

    def remove_reaction(self, channel, ts, name) -> None:
        try:
            self._client.reactions_remove(channel=channel, timestamp=ts, name=name)
        except SlackApiError as e:
            if e.response.get("error") == "no_reaction":
                return
            raise ChatError(f"reactions.remove failed: {e.response.get('error')}") from e

    def fetch_thread(self, channel, thread_ts, limit=20) -> List[ConversationTurn]:
        # Replies come oldest first; walk every page so the tail is the newest
        messages: List[Dict[str, Any]] = []
        cursor = None
        while True:
            kwargs: Dict[str, Any] = {"channel": channel, "ts": thread_ts, "limit": 200}
            if cursor:
                kwargs["cursor"] = cursor
            try:
                response = self._client.conversations_replies(**kwargs)
            except SlackApiError as e:
                raise ChatError(f"conversations.replies failed: {e.response.get('error')}") from e
            messages.extend(response.get("messages", []) or [])
            cursor = (response.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                break
        return _to_turns(messages, self.bot_user_id)[-limit:]

    def fetch_history(self, channel, limit=20) -> List[ConversationTurn]:
        try:
            response = self._client.conversations_history(channel=channel, limit=limit)
        except SlackApiError as e:
            raise ChatError(f"conversations.history failed: {e.response.get('error')}") from e
        messages = list(reversed(response.get("messages", []) or []))  # newest-first from Slack
        return _to_turns(messages, self.bot_user_id)[-limit:]
