"""
Slack Handler

Handles Slack Events API and interactivity payloads and converts them to
Messages and Actions.
"""

import hmac
import hashlib
import json
import re
import time
from typing import Optional, Dict, Any, List
from urllib.parse import parse_qs

from .base import BaseHandler, Message, Action

# Slack mentions format: <@U12345678>
MENTION_RE = re.compile(r'<@([UW][A-Z0-9]+)(?:\|[^>]*)?>')


class SlackHandler(BaseHandler):
    """
    Handler for Slack Events API webhooks.

    Processes:
    - app_mention events (the bot was @mentioned)
    - message events (DMs and task channels)
    - block_actions interaction payloads (Save/Dismiss buttons)

    Ignores:
    - Bot messages, including the bot's own posts
    - Edits, deletions, joins and other message subtypes
    """

    IGNORED_SUBTYPES = {
        "bot_message", "message_changed", "message_deleted",
        "channel_join", "channel_leave", "channel_topic",
        "channel_purpose", "channel_name", "thread_broadcast",
    }

    def __init__(self, signing_secret: str = "", bot_user_id: str = ""):
        """
        Initialize Slack handler.

        Args:
            signing_secret: Slack signing secret for verification
            bot_user_id: The bot's own user id (its messages are ignored)
        """
        super().__init__("slack")
        self._signing_secret = signing_secret
        self._bot_user_id = bot_user_id

    def parse_event(self, raw_data: Dict[str, Any]) -> Optional[Message]:
        """
        Parse Slack event callback into Message.

        Args:
            raw_data: Raw Slack event data

        Returns:
            Message object or None if event should be ignored
        """
        if raw_data.get("type") != "event_callback":
            return None

        event = raw_data.get("event", {})
        event_type = event.get("type", "")
        if event_type not in ("app_mention", "message"):
            return None

        if event.get("subtype") in self.IGNORED_SUBTYPES:
            return None

        user = event.get("user", "")
        text = event.get("text", "") or ""
        is_bot = bool(event.get("bot_id")) or (bool(self._bot_user_id) and user == self._bot_user_id)

        return Message(
            text=text,
            user=user,
            channel=event.get("channel", ""),
            source="slack",
            timestamp=event.get("ts", ""),
            thread_ts=event.get("thread_ts"),
            event_type=event_type,
            channel_type=event.get("channel_type", ""),
            is_bot=is_bot,
            mentions=self._extract_mentions(text),
            raw_data=event,
        )

    def parse_action(self, body: bytes) -> Optional[Action]:
        """
        Parse an interactivity request (form-encoded ``payload=<json>``).

        Only the first action of a block_actions payload is used.
        """
        try:
            form = parse_qs(body.decode("utf-8"))
            payload = json.loads(form.get("payload", [""])[0])
        except (UnicodeDecodeError, json.JSONDecodeError, IndexError):
            return None

        if payload.get("type") != "block_actions":
            return None
        actions = payload.get("actions") or []
        if not actions:
            return None

        action = actions[0]
        message = payload.get("message") or {}
        container = payload.get("container") or {}
        return Action(
            action_id=action.get("action_id", ""),
            value=action.get("value", ""),
            user=(payload.get("user") or {}).get("id", ""),
            channel=(payload.get("channel") or {}).get("id", "") or container.get("channel_id", ""),
            message_ts=message.get("ts", "") or container.get("message_ts", ""),
            thread_ts=message.get("thread_ts"),
            raw_data=payload,
        )

    def _extract_mentions(self, text: str) -> List[str]:
        """Extract user mentions from text"""
        return MENTION_RE.findall(text)

    def mentions_bot(self, message: Message) -> bool:
        return bool(self._bot_user_id) and self._bot_user_id in message.mentions

    def verify_signature(
        self,
        body: bytes,
        signature: str,
        timestamp: str
    ) -> bool:
        """
        Verify Slack request signature.

        Args:
            body: Raw request body
            signature: X-Slack-Signature header
            timestamp: X-Slack-Request-Timestamp header

        Returns:
            True if signature is valid
        """
        if not self._signing_secret:
            # Skip verification if no secret configured
            return True

        if not signature or not timestamp:
            return False

        # Check timestamp is recent (within 5 minutes)
        try:
            ts = int(timestamp)
            if abs(time.time() - ts) > 300:
                return False
        except ValueError:
            return False

        sig_basestring = f"v0:{timestamp}:{body.decode('utf-8')}"
        expected_sig = "v0=" + hmac.new(
            self._signing_secret.encode('utf-8'),
            sig_basestring.encode('utf-8'),
            hashlib.sha256
        ).hexdigest()

        return hmac.compare_digest(expected_sig, signature)

    def is_url_verification(self, raw_data: Dict[str, Any]) -> bool:
        """Check if request is URL verification"""
        return raw_data.get("type") == "url_verification"

    def get_challenge(self, raw_data: Dict[str, Any]) -> Optional[str]:
        """Get challenge for URL verification"""
        if self.is_url_verification(raw_data):
            return raw_data.get("challenge")
        return None
