"""
Channel Router

Maps a source channel to its routing policy and a task to its outcome.
The routing table is passed in at construction; the router never reads
process state and never touches the inbox document.
"""

import logging
from enum import Enum
from typing import Dict, Mapping, Optional

from ..common.schemas import ChannelPolicy, Destination, Task, default_policy

logger = logging.getLogger("taskbot.capture.router")


class RoutingOutcome(str, Enum):
    """What happens to a task after routing"""
    STAGED = "staged"    # posted for confirmation, persisted on Save
    LOGGED = "logged"    # persisted right away, confirmation-only reply


class ChannelRouter:
    """Resolves channel policies from a static routing table."""

    def __init__(self, policies: Optional[Mapping[str, ChannelPolicy]] = None):
        """
        Initialize router.

        Args:
            policies: Mapping of channel id -> ChannelPolicy
        """
        self._policies: Dict[str, ChannelPolicy] = dict(policies or {})

    @property
    def channel_count(self) -> int:
        return len(self._policies)

    def resolve(self, channel_id: str) -> ChannelPolicy:
        """Policy for a channel; unknown channels get the staging default"""
        policy = self._policies.get(channel_id)
        if policy is None:
            logger.debug("No policy for channel %s, using default", channel_id)
            return default_policy(channel_id)
        return policy

    def route(self, task: Task, policy: ChannelPolicy) -> RoutingOutcome:
        if policy.destination == Destination.DIRECT_LOG:
            return RoutingOutcome.LOGGED
        return RoutingOutcome.STAGED

    def display_name(self, channel_id: str) -> str:
        return self.resolve(channel_id).display_name

    def describe(self) -> Dict[str, dict]:
        """Routing table as plain dicts (for the /channels endpoint)"""
        return {
            channel_id: {
                "display_name": policy.display_name,
                "destination": policy.destination.value,
                "task_channel": policy.task_channel,
            }
            for channel_id, policy in self._policies.items()
        }
