"""Tests for the FastAPI webhook server."""

import hashlib
import hmac
import json
import time
from unittest.mock import MagicMock, patch
from urllib.parse import urlencode

import pytest
from fastapi.testclient import TestClient

from taskbot.capture import server
from taskbot.capture.handlers import SlackHandler
from taskbot.capture.router import ChannelRouter
from taskbot.common.schemas import ChannelPolicy, Destination

SECRET = "test-signing-secret"


def signed_headers(body: bytes, secret: str = SECRET) -> dict:
    ts = str(int(time.time()))
    base = f"v0:{ts}:{body.decode('utf-8')}"
    sig = "v0=" + hmac.new(secret.encode(), base.encode(), hashlib.sha256).hexdigest()
    return {"X-Slack-Signature": sig, "X-Slack-Request-Timestamp": ts}


@pytest.fixture
def pipeline():
    mock = MagicMock()
    mock.router = ChannelRouter({
        "C-OPS": ChannelPolicy(channel_id="C-OPS", display_name="ops", destination=Destination.DIRECT_LOG),
    })
    mock.inbox.path = "/tmp/inbox.md"
    mock.should_handle.return_value = True
    return mock


@pytest.fixture
def client(pipeline):
    # no context manager: lifespan (config, Slack auth) is not run
    with patch.object(server, "pipeline", pipeline), \
         patch.object(server, "slack_handler", SlackHandler(signing_secret=SECRET, bot_user_id="UBOT")):
        yield TestClient(server.app)


def mention_body(**extra) -> bytes:
    event = {"type": "app_mention", "channel": "C1", "user": "U1", "text": "<@UBOT> task: x", "ts": "1.0"}
    event.update(extra)
    return json.dumps({"type": "event_callback", "event": event}).encode()


class TestHealth:
    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["initialized"] is True
        assert data["routed_channels"] == 1

    def test_channels(self, client):
        data = client.get("/channels").json()
        assert data["channels"]["C-OPS"]["destination"] == "direct_log"

    def test_not_initialized(self):
        with patch.object(server, "pipeline", None), patch.object(server, "slack_handler", None):
            response = TestClient(server.app).post("/slack/events", content=b"{}")
        assert response.status_code == 503


class TestSlackEvents:
    def test_url_verification(self, client):
        body = json.dumps({"type": "url_verification", "challenge": "xyz"}).encode()
        response = client.post("/slack/events", content=body, headers=signed_headers(body))
        assert response.json() == {"challenge": "xyz"}

    def test_bad_signature(self, client, pipeline):
        body = mention_body()
        response = client.post("/slack/events", content=body, headers=signed_headers(body, "wrong"))
        assert response.status_code == 401
        pipeline.handle_message.assert_not_called()

    def test_mention_is_handled(self, client, pipeline):
        body = mention_body()
        response = client.post("/slack/events", content=body, headers=signed_headers(body))
        assert response.status_code == 200
        pipeline.handle_message.assert_called_once()
        message = pipeline.handle_message.call_args[0][0]
        assert message.text == "<@UBOT> task: x"
        assert pipeline.should_handle.call_args.kwargs["mentions_bot"] is True

    def test_bot_message_skipped(self, client, pipeline):
        body = mention_body(bot_id="B1")
        client.post("/slack/events", content=body, headers=signed_headers(body))
        pipeline.should_handle.assert_not_called()
        pipeline.handle_message.assert_not_called()

    def test_declined_by_pipeline(self, client, pipeline):
        pipeline.should_handle.return_value = False
        body = mention_body()
        client.post("/slack/events", content=body, headers=signed_headers(body))
        pipeline.handle_message.assert_not_called()

    def test_retries_are_acknowledged_only(self, client, pipeline):
        body = mention_body()
        headers = {**signed_headers(body), "X-Slack-Retry-Num": "1"}
        response = client.post("/slack/events", content=body, headers=headers)
        assert response.status_code == 200
        pipeline.handle_message.assert_not_called()

    def test_invalid_json(self, client):
        body = b"not json"
        response = client.post("/slack/events", content=body, headers=signed_headers(body))
        assert response.status_code == 400


class TestSlackActions:
    def test_action_is_handled(self, client, pipeline):
        payload = {
            "type": "block_actions",
            "user": {"id": "U1"},
            "channel": {"id": "C1"},
            "message": {"ts": "2.0"},
            "actions": [{"action_id": "task_save", "value": '{"title": "X"}'}],
        }
        body = urlencode({"payload": json.dumps(payload)}).encode()
        response = client.post(
            "/slack/actions",
            content=body,
            headers={**signed_headers(body), "Content-Type": "application/x-www-form-urlencoded"},
        )
        assert response.status_code == 200
        action = pipeline.handle_action.call_args[0][0]
        assert action.action_id == "task_save"
        assert action.message_ts == "2.0"

    def test_unsupported_payload(self, client, pipeline):
        body = urlencode({"payload": json.dumps({"type": "view_submission"})}).encode()
        response = client.post("/slack/actions", content=body, headers=signed_headers(body))
        assert response.status_code == 400
        pipeline.handle_action.assert_not_called()


class TestBuildPipeline:
    def test_wires_config(self, tmp_path):
        from taskbot.common.config import TaskbotConfig
        from taskbot.common.invoker import CLIInvoker
        cfg = TaskbotConfig()
        cfg.inbox.path = str(tmp_path / "inbox.md")
        cfg.channels = {"C-OPS": ChannelPolicy(channel_id="C-OPS", destination=Destination.DIRECT_LOG)}

        built = server.build_pipeline(cfg, MagicMock())

        assert built.router.channel_count == 1
        assert built.inbox.path == tmp_path / "inbox.md"
        assert isinstance(built._invoker, CLIInvoker)
