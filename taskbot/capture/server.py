"""
Taskbot Server

FastAPI server for receiving Slack webhooks and capturing tasks.

Endpoints:
- POST /slack/events: Slack Events API endpoint
- POST /slack/actions: Slack interactivity endpoint (Save/Dismiss buttons)
- GET /health: Health check
- GET /channels: Channel routing table

Pipeline:
1. Receive webhook event
2. Parse with the Slack handler
3. Classify, extract, route in a background task
4. Stage for confirmation or log to the inbox document
"""

import json
import logging
from typing import Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, HTTPException, Header, BackgroundTasks
from fastapi.responses import JSONResponse

from ..common.config import load_config, TaskbotConfig, ensure_directories, configure_logging
from ..common.invoker import build_invoker
from .chat import SlackChatClient
from .handlers import SlackHandler
from .inbox import InboxDocument
from .pipeline import TaskPipeline
from .router import ChannelRouter

logger = logging.getLogger("taskbot.capture.server")

# Global state
config: Optional[TaskbotConfig] = None
pipeline: Optional[TaskPipeline] = None
slack_handler: Optional[SlackHandler] = None


def build_pipeline(cfg: TaskbotConfig, chat: SlackChatClient) -> TaskPipeline:
    """Wire the pipeline from configuration"""
    return TaskPipeline(
        chat=chat,
        invoker=build_invoker(cfg.model),
        router=ChannelRouter(cfg.channels),
        inbox=InboxDocument(cfg.inbox.path),
        timeout_ms=cfg.model.timeout_ms,
        staging_channel=cfg.slack.staging_channel,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    global config, pipeline, slack_handler

    configure_logging()
    logger.info("Starting up...")

    ensure_directories()

    config = load_config()
    logger.info(
        "Loaded config (backend: %s, %d routed channel(s), inbox: %s)",
        config.model.backend, len(config.channels), config.inbox.path,
    )

    chat = SlackChatClient(token=config.slack.bot_token, bot_user_id=config.slack.bot_user_id)
    pipeline = build_pipeline(config, chat)
    slack_handler = SlackHandler(
        signing_secret=config.slack.signing_secret,
        bot_user_id=chat.bot_user_id,
    )
    if not config.slack.signing_secret:
        logger.warning("No Slack signing secret configured, request verification disabled")

    logger.info("Ready to receive events")

    yield

    logger.info("Shutting down...")


app = FastAPI(
    title="Taskbot",
    description="Task capture from team chat via webhooks",
    version="0.1.0",
    lifespan=lifespan
)


def _require_ready() -> None:
    if not slack_handler or not pipeline:
        raise HTTPException(status_code=503, detail="Handler not initialized")


async def _verified_body(request: Request, signature: Optional[str], timestamp: Optional[str]) -> bytes:
    body = await request.body()
    if not slack_handler.verify_signature(body, signature or "", timestamp or ""):
        raise HTTPException(status_code=401, detail="Invalid signature")
    return body


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "taskbot",
        "initialized": pipeline is not None,
        "routed_channels": pipeline.router.channel_count if pipeline else 0,
        "inbox_path": str(pipeline.inbox.path) if pipeline else None,
    }


@app.get("/channels")
async def channels():
    """Channel routing table"""
    _require_ready()
    return {"channels": pipeline.router.describe()}


@app.post("/slack/events")
async def slack_events(
    request: Request,
    background_tasks: BackgroundTasks,
    x_slack_signature: Optional[str] = Header(None),
    x_slack_request_timestamp: Optional[str] = Header(None),
    x_slack_retry_num: Optional[str] = Header(None),
):
    """
    Handle Slack Events API callbacks.

    Work happens in a background task so Slack gets its ack quickly.
    """
    _require_ready()
    body = await _verified_body(request, x_slack_signature, x_slack_request_timestamp)

    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON")

    if slack_handler.is_url_verification(data):
        return JSONResponse({"challenge": slack_handler.get_challenge(data)})

    # Slack redelivers slow acks; the first delivery is already being handled
    if x_slack_retry_num:
        logger.debug("Ignoring Slack retry #%s", x_slack_retry_num)
        return JSONResponse({"ok": True})

    message = slack_handler.parse_event(data)
    if message and slack_handler.should_process(message):
        if pipeline.should_handle(message, mentions_bot=slack_handler.mentions_bot(message)):
            background_tasks.add_task(pipeline.handle_message, message)

    return JSONResponse({"ok": True})


@app.post("/slack/actions")
async def slack_actions(
    request: Request,
    background_tasks: BackgroundTasks,
    x_slack_signature: Optional[str] = Header(None),
    x_slack_request_timestamp: Optional[str] = Header(None),
):
    """Handle Save/Dismiss clicks on staged task messages"""
    _require_ready()
    body = await _verified_body(request, x_slack_signature, x_slack_request_timestamp)

    action = slack_handler.parse_action(body)
    if action is None:
        raise HTTPException(status_code=400, detail="Unsupported interaction payload")

    background_tasks.add_task(pipeline.handle_action, action)
    return JSONResponse({"ok": True})


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the Taskbot server"""
    import uvicorn

    configure_logging()
    cfg = load_config()
    port = cfg.slack.port

    logger.info("Starting server on port %d", port)
    uvicorn.run(
        "taskbot.capture.server:app",
        host="0.0.0.0",
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
