"""
Health Triage Engine — FastAPI Application.

Webhook and chat endpoints for every channel:
  - POST /v1/messages                       web chat (reply in the response)
  - GET  /v1/web/{user_id}/outbox           web messages pushed outside a request
  - GET  /v1/whatsapp/webhook               WhatsApp subscription verification
  - POST /v1/whatsapp/webhook               WhatsApp inbound messages
  - POST /v1/sms/webhook                    SMS inbound messages (form encoded)
  - POST /v1/sessions/{platform}/{user_id}/end
  - GET  /health

WhatsApp and SMS replies are sent in the background through the channel
adapters; the webhook is acknowledged as soon as the turn is processed.
"""

import json
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Form, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field

import config
from channels import SmsAdapter, WebAdapter, WhatsAppAdapter
from channels.web import render
from database.memory import (
    InMemoryHealthWorkerDispatch,
    InMemoryMedicalRecordSink,
    InMemorySessionRepository,
    LoggingAnalyticsSink,
)
from database.mongo_client import (
    MongoAnalyticsSink,
    MongoDBClient,
    MongoHealthWorkerDispatch,
    MongoMedicalRecordSink,
    MongoSessionRepository,
)
from triage import errors
from triage.conversation_manager import ConversationManager
from triage.delivery import AnalyticsEmitter, OutboundDispatcher
from triage.errors import PersistenceError
from triage.llm_engine import GeminiReplyGenerator
from triage.models import Platform
from triage.replies import TemplateReplyGenerator
from triage.session_store import SessionStore
from triage.sweeper import SessionSweeper

logger = logging.getLogger(__name__)


# ── Request Models ─────────────────────────────────────────────────────────


class MessageRequest(BaseModel):
    """Web chat message."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    text: str = ""
    platform: str = Platform.WEB.value
    language: str | None = None
    location: str | None = None
    message_id: str | None = Field(default=None, alias="messageId")


# ── Initialize Core Components ─────────────────────────────────────────────

def initialize_components() -> ConversationManager:
    """Wire the conversation manager to MongoDB when reachable, else to memory."""
    try:
        replies = GeminiReplyGenerator()
    except ValueError as e:
        logger.warning("[INIT] %s Falling back to templated replies.", e.args[0].splitlines()[0])
        replies = TemplateReplyGenerator()

    db = MongoDBClient()
    if db.connected:
        sessions = MongoSessionRepository(db)
        try:
            sessions.ensure_indexes()
        except PersistenceError as e:
            logger.warning("[INIT] %s", e)
        return ConversationManager(
            store=SessionStore(sessions),
            records=MongoMedicalRecordSink(db),
            dispatch=MongoHealthWorkerDispatch(db),
            analytics=AnalyticsEmitter(MongoAnalyticsSink(db)),
            replies=replies,
        )

    logger.warning("[INIT] MongoDB not configured, sessions are kept in memory")
    return ConversationManager(
        store=SessionStore(InMemorySessionRepository()),
        records=InMemoryMedicalRecordSink(),
        dispatch=InMemoryHealthWorkerDispatch(),
        analytics=AnalyticsEmitter(LoggingAnalyticsSink()),
        replies=replies,
    )


# ── Build FastAPI App ──────────────────────────────────────────────────────

def create_app(
    manager: ConversationManager | None = None,
    whatsapp: WhatsAppAdapter | None = None,
    sms: SmsAdapter | None = None,
    web: WebAdapter | None = None,
    run_sweeper: bool = True,
) -> FastAPI:
    """Build and return the FastAPI application."""

    manager = manager or initialize_components()
    whatsapp = whatsapp or WhatsAppAdapter()
    sms = sms or SmsAdapter()
    web = web or WebAdapter()
    dispatcher = OutboundDispatcher({
        Platform.WEB: web,
        Platform.WHATSAPP: whatsapp,
        Platform.SMS: sms,
    })
    sweeper = SessionSweeper(manager.store, manager.analytics)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if run_sweeper:
            sweeper.start()
        yield
        await sweeper.stop()
        await dispatcher.drain()
        await manager.analytics.drain()
        await whatsapp.aclose()
        await sms.aclose()

    app = FastAPI(
        title=config.APP_TITLE,
        description=config.APP_DESCRIPTION,
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.manager = manager
    app.state.dispatcher = dispatcher
    app.state.sweeper = sweeper

    @app.exception_handler(errors.ValidationError)
    async def validation_error_handler(request: Request, exc: errors.ValidationError):
        return JSONResponse(status_code=422, content={"error": str(exc)})

    # ── Web Chat ───────────────────────────────────────────────────────

    @app.post("/v1/messages")
    async def post_message(body: MessageRequest):
        """Process a web chat message and return the reply."""
        (inbound,) = web.parse(body.model_dump(by_alias=True))
        reply = await manager.handle(inbound)
        return render(reply)

    @app.get("/v1/web/{user_id}/outbox")
    async def web_outbox(user_id: str):
        return {"messages": web.drain(user_id)}

    # ── WhatsApp ───────────────────────────────────────────────────────

    @app.get("/v1/whatsapp/webhook")
    async def whatsapp_verify(request: Request):
        params = request.query_params
        challenge = whatsapp.verify_subscription(
            params.get("hub.mode"), params.get("hub.verify_token"), params.get("hub.challenge")
        )
        if challenge is None:
            raise HTTPException(status_code=403, detail="Verification failed")
        return PlainTextResponse(challenge)

    @app.post("/v1/whatsapp/webhook")
    async def whatsapp_webhook(request: Request):
        body = await request.body()
        if not whatsapp.verify_signature(body, request.headers.get("x-hub-signature-256")):
            raise HTTPException(status_code=403, detail="Invalid signature")
        try:
            payload = json.loads(body)
        except json.JSONDecodeError as e:
            raise HTTPException(status_code=400, detail="Malformed JSON") from e

        inbound_messages = whatsapp.parse(payload)
        for inbound in inbound_messages:
            reply = await manager.handle(inbound)
            dispatcher.dispatch(reply)
        return {"success": True, "processed": len(inbound_messages)}

    # ── SMS ────────────────────────────────────────────────────────────

    @app.post("/v1/sms/webhook")
    async def sms_webhook(
        sender: str = Form(default="", alias="From"),
        body: str | None = Form(default=None, alias="Body"),
        message_sid: str | None = Form(default=None, alias="MessageSid"),
        language: str | None = Form(default=None),
    ):
        (inbound,) = sms.parse({
            "From": sender,
            "Body": body,
            "MessageSid": message_sid,
            "language": language,
        })
        reply = await manager.handle(inbound)
        dispatcher.dispatch(reply)
        return {"success": True}

    # ── Sessions ───────────────────────────────────────────────────────

    @app.post("/v1/sessions/{platform}/{user_id}/end")
    async def end_session(platform: str, user_id: str):
        try:
            platform = Platform(platform)
        except ValueError:
            raise HTTPException(status_code=404, detail=f"Unknown platform: {platform}")
        ended = await manager.end_session(user_id, platform)
        return {"ended": ended}

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "health_triage_engine"}

    return app


# ── Entry Point ────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "app:create_app",
        factory=True,
        host=config.API_HOST,
        port=config.API_PORT,
    )
