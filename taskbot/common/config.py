"""
Configuration Management for Taskbot

Loads configuration from ~/.taskbot/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List

from dotenv import load_dotenv

from .schemas import ChannelPolicy, Destination

logger = logging.getLogger("taskbot.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".taskbot"
CONFIG_PATH = CONFIG_DIR / "config.json"
INBOX_PATH = CONFIG_DIR / "inbox.md"

DEFAULT_TIMEOUT_MS = 120_000
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class ModelConfig:
    """Language-model backend configuration"""
    backend: str = "cli"  # "cli" (subprocess) or "api" (Anthropic SDK)
    executable: str = "claude"
    args: List[str] = field(default_factory=lambda: ["-p"])
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"


@dataclass
class SlackConfig:
    """Slack app configuration"""
    bot_token: str = ""
    signing_secret: str = ""
    bot_user_id: str = ""
    port: int = 8080
    staging_channel: str = ""  # empty: stage in the source thread


@dataclass
class InboxConfig:
    """Planning document configuration"""
    path: str = str(INBOX_PATH)


@dataclass
class TaskbotConfig:
    """Main Taskbot configuration"""
    model: ModelConfig = field(default_factory=ModelConfig)
    slack: SlackConfig = field(default_factory=SlackConfig)
    inbox: InboxConfig = field(default_factory=InboxConfig)
    channels: Dict[str, ChannelPolicy] = field(default_factory=dict)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_model_config(data: dict) -> ModelConfig:
    """Parse model section from config dict"""
    model_data = data.get("model", {})
    return ModelConfig(
        backend=model_data.get("backend", "cli"),
        executable=model_data.get("executable", "claude"),
        args=list(model_data.get("args", ["-p"])),
        timeout_ms=int(model_data.get("timeout_ms", DEFAULT_TIMEOUT_MS)),
        anthropic_api_key=model_data.get("anthropic_api_key", ""),
        anthropic_model=model_data.get("anthropic_model", "claude-sonnet-4-20250514"),
    )


def _parse_slack_config(data: dict) -> SlackConfig:
    """Parse slack section from config dict"""
    slack_data = data.get("slack", {})
    return SlackConfig(
        bot_token=slack_data.get("bot_token", ""),
        signing_secret=slack_data.get("signing_secret", ""),
        bot_user_id=slack_data.get("bot_user_id", ""),
        port=int(slack_data.get("port", 8080)),
        staging_channel=slack_data.get("staging_channel", ""),
    )


def _parse_inbox_config(data: dict) -> InboxConfig:
    """Parse inbox section from config dict"""
    inbox_data = data.get("inbox", {})
    return InboxConfig(path=inbox_data.get("path", str(INBOX_PATH)))


def _parse_channels(data: dict) -> Dict[str, ChannelPolicy]:
    """Parse the channel routing table.

    Each entry maps a channel id to ``{display_name, destination,
    task_channel}``. Unknown destinations fall back to staging.
    """
    channels = {}
    for channel_id, entry in (data.get("channels") or {}).items():
        entry = entry or {}
        try:
            destination = Destination(entry.get("destination", Destination.CONFIRM_AND_STAGE.value))
        except ValueError:
            logger.warning(
                "Unknown destination %r for channel %s, using confirm_and_stage",
                entry.get("destination"), channel_id,
            )
            destination = Destination.CONFIRM_AND_STAGE
        channels[channel_id] = ChannelPolicy(
            channel_id=channel_id,
            display_name=entry.get("display_name") or channel_id,
            destination=destination,
            task_channel=bool(entry.get("task_channel", True)),
        )
    return channels


def load_config() -> TaskbotConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (a local .env file is read first)
    2. Config file (~/.taskbot/config.json)
    3. Default values
    """
    load_dotenv()
    config = TaskbotConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.model = _parse_model_config(data)
            config.slack = _parse_slack_config(data)
            config.inbox = _parse_inbox_config(data)
            config.channels = _parse_channels(data)
        except (json.JSONDecodeError, IOError, ValueError) as e:
            logger.warning("Failed to load config file: %s", e)

    # Environment variable overrides
    if os.getenv("TASKBOT_PORT"):
        config.slack.port = int(os.getenv("TASKBOT_PORT"))
    if os.getenv("TASKBOT_STAGING_CHANNEL"):
        config.slack.staging_channel = os.getenv("TASKBOT_STAGING_CHANNEL")
    if os.getenv("SLACK_BOT_USER_ID"):
        config.slack.bot_user_id = os.getenv("SLACK_BOT_USER_ID")

    if os.getenv("TASKBOT_MODEL_BACKEND"):
        config.model.backend = os.getenv("TASKBOT_MODEL_BACKEND")
    if os.getenv("TASKBOT_MODEL_EXECUTABLE"):
        config.model.executable = os.getenv("TASKBOT_MODEL_EXECUTABLE")
    if os.getenv("TASKBOT_MODEL_TIMEOUT_MS"):
        config.model.timeout_ms = int(os.getenv("TASKBOT_MODEL_TIMEOUT_MS"))
    if os.getenv("ANTHROPIC_MODEL"):
        config.model.anthropic_model = os.getenv("ANTHROPIC_MODEL")

    if os.getenv("TASKBOT_INBOX_PATH"):
        config.inbox.path = os.getenv("TASKBOT_INBOX_PATH")

    # Secret env overrides (track env-sourced keys so they are never saved)
    _env_secret_map = {
        "SLACK_BOT_TOKEN": (config.slack, "bot_token"),
        "SLACK_SIGNING_SECRET": (config.slack, "signing_secret"),
        "ANTHROPIC_API_KEY": (config.model, "anthropic_api_key"),
    }
    for env_var, (section, attr) in _env_secret_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(section, attr, val)
            config._env_sourced_keys.add(attr)

    return config


def save_config(config: TaskbotConfig) -> None:
    """Save configuration to file.

    Secrets that were sourced from environment variables are written as
    empty strings so that they are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    def _secret(attr: str, value: str) -> str:
        return "" if attr in env_sourced else value

    data = {
        "model": {
            "backend": config.model.backend,
            "executable": config.model.executable,
            "args": list(config.model.args),
            "timeout_ms": config.model.timeout_ms,
            "anthropic_api_key": _secret("anthropic_api_key", config.model.anthropic_api_key),
            "anthropic_model": config.model.anthropic_model,
        },
        "slack": {
            "bot_token": _secret("bot_token", config.slack.bot_token),
            "signing_secret": _secret("signing_secret", config.slack.signing_secret),
            "bot_user_id": config.slack.bot_user_id,
            "port": config.slack.port,
            "staging_channel": config.slack.staging_channel,
        },
        "inbox": {
            "path": config.inbox.path,
        },
        "channels": {
            channel_id: {
                "display_name": policy.display_name,
                "destination": policy.destination.value,
                "task_channel": policy.task_channel,
            }
            for channel_id, policy in config.channels.items()
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories() -> None:
    """Ensure the config directory (default inbox location) exists"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)


def configure_logging(level: str = "") -> None:
    """Configure the root 'taskbot' logger once per process"""
    level_name = (level or os.getenv("TASKBOT_LOG_LEVEL") or "INFO").upper()
    root = logging.getLogger("taskbot")
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))
