"""FastAPI application entrypoint."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any
from uuid import uuid4

import redis
from fastapi import BackgroundTasks, Body, FastAPI, Header, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from bridge.config import get_settings
from bridge.dedup import DedupCache
from bridge.errors import BridgeError, UpstreamError
from bridge.gateway import GatewayListener
from bridge.integrations.discord import DiscordClient
from bridge.integrations.intercom import IntercomClient
from bridge.logging import clear_request_id, configure_logging, set_request_id
from bridge.registry import InMemoryBindingStore
from bridge.schemas import (
    AdoptRequest,
    AdoptResponse,
    ChatMessage,
    CloseRequest,
    CloseResponse,
    CreateTicketResponse,
    HealthResponse,
    RegisterRequest,
    RelayResponse,
    SendToChatRequest,
    TicketIntake,
    TrackedChannelsResponse,
    UnregisterRequest,
    WebhookAck,
)
from bridge.service import BridgeService

LOGGER = logging.getLogger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach request id to logging context and response headers."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid4().hex
        token = set_request_id(request_id)
        try:
            response = await call_next(request)
        finally:
            clear_request_id(token)
        response.headers["X-Request-ID"] = request_id
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize runtime dependencies on startup."""
    settings = get_settings()
    configure_logging(settings.log_level)

    dedup = None
    if settings.redis_url:
        redis_client = redis.from_url(settings.redis_url)
        try:
            redis_client.ping()
        except redis.RedisError as exc:
            raise RuntimeError(f"Redis unavailable at startup: {settings.redis_url}") from exc
        dedup = DedupCache(redis_client, ttl_seconds=settings.dedup_ttl_seconds)
    else:
        LOGGER.warning(
            "delivery dedup disabled",
            extra={"event": "dedup_disabled", "context": {"reason": "REDIS_URL not set"}},
        )

    intercom = None
    if settings.intercom_token:
        intercom = IntercomClient(
            settings.intercom_token,
            base_url=settings.intercom_api_base,
            api_version=settings.intercom_api_version,
            timeout=settings.http_timeout_seconds,
        )
    else:
        LOGGER.warning(
            "intercom relay disabled",
            extra={"event": "relay_degraded", "context": {"reason": "INTERCOM_TOKEN not set"}},
        )

    discord = None
    if settings.discord_bot_token:
        discord = DiscordClient(
            settings.discord_bot_token,
            base_url=settings.discord_api_base,
            timeout=settings.http_timeout_seconds,
        )
    else:
        LOGGER.warning(
            "discord relay disabled",
            extra={"event": "relay_degraded", "context": {"reason": "DISCORD_BOT_TOKEN not set"}},
        )

    app.state.settings = settings
    service = BridgeService(
        settings=settings,
        bindings=InMemoryBindingStore(),
        intercom=intercom,
        discord=discord,
        dedup=dedup,
    )
    app.state.service = service

    gateway = None
    gateway_task = None
    if discord is not None and settings.discord_gateway_enabled:
        gateway = GatewayListener(service)
        gateway_task = asyncio.create_task(gateway.serve(settings.discord_bot_token))
    try:
        yield
    finally:
        if gateway is not None:
            await gateway.close()
            await gateway_task


app = FastAPI(title="discord-intercom-bridge", lifespan=lifespan)
app.add_middleware(RequestIDMiddleware)


@app.exception_handler(BridgeError)
async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
    body: dict[str, Any] = {"success": False, "error": exc.message}
    if isinstance(exc, UpstreamError):
        settings = getattr(app.state, "settings", None)
        body["service"] = exc.service
        body["upstream_status"] = exc.upstream_status
        body["details"] = exc.details if settings is not None and settings.expose_upstream_details else exc.summary()
    elif exc.details is not None:
        body["details"] = exc.details
    LOGGER.warning(
        "request failed",
        extra={
            "event": "request_failed",
            "context": {"path": request.url.path, "status_code": exc.status_code, "error": exc.message},
        },
    )
    return JSONResponse(body, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        {"success": False, "error": "Invalid request body", "details": jsonable_encoder(exc.errors())},
        status_code=400,
    )


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    """Service health endpoint."""
    return HealthResponse(app=app.state.settings.app_name, tracked_channels=len(app.state.service.bindings))


@app.post("/tickets-to-intercom", response_model=CreateTicketResponse)
async def tickets_to_intercom(
    background_tasks: BackgroundTasks,
    intake: TicketIntake,
    authorization: str | None = Header(default=None),
    x_ticket_type_id: str | None = Header(default=None),
    idempotency_key: str | None = Header(default=None),
) -> CreateTicketResponse:
    """Create an Intercom ticket for a new Discord ticket channel."""
    service: BridgeService = app.state.service
    token, ticket_type_id = service.credentials(authorization, x_ticket_type_id)
    response = await service.create_ticket(intake, token, ticket_type_id, idempotency=idempotency_key)
    if intake.channel_id:
        background_tasks.add_task(
            service.register_detached,
            intake.channel_id,
            response.intercom_ticket_id,
            response.user.intercom_contact_id,
            intake.user_id,
        )
    return response


@app.head("/intercom/webhook")
def intercom_webhook_probe() -> Response:
    """Intercom checks the endpoint with HEAD when a webhook is saved."""
    return Response(status_code=200)


@app.post("/intercom/webhook", response_model=WebhookAck)
async def intercom_webhook(background_tasks: BackgroundTasks, payload: dict[str, Any] = Body(...)) -> WebhookAck:
    """Acknowledge first; classification and relay run after the response."""
    background_tasks.add_task(app.state.service.run_webhook, payload)
    return WebhookAck()


@app.post("/discord/messages", response_model=RelayResponse)
async def discord_message(message: ChatMessage) -> RelayResponse:
    """Discord message forwarded by the gateway worker."""
    outcome = await app.state.service.handle_chat_message(message)
    return RelayResponse(success=outcome != "failed", outcome=outcome)


@app.post("/send-to-discord", response_model=RelayResponse)
async def send_to_discord(payload: SendToChatRequest):
    """Post a message into a Discord channel on behalf of an Intercom author."""
    outcome = await app.state.service.send_to_chat(payload.channel_id, payload.author_name, payload.message)
    if outcome == "forwarded":
        return RelayResponse(success=True, outcome=outcome)
    status_code = 404 if outcome in {"channel_not_found", "not_text_channel"} else 502
    return JSONResponse(RelayResponse(success=False, outcome=outcome).model_dump(), status_code=status_code)


@app.post("/register-ticket")
def register_ticket(payload: RegisterRequest) -> dict[str, bool]:
    app.state.service.register(
        payload.discord_channel_id,
        payload.intercom_ticket_id,
        payload.intercom_contact_id,
        payload.user_id,
    )
    return {"success": True}


@app.post("/unregister-ticket")
def unregister_ticket(payload: UnregisterRequest) -> dict[str, bool]:
    was_tracked = app.state.service.unregister(payload.discord_channel_id)
    return {"success": True, "was_tracked": was_tracked}


@app.post("/fetch-and-register-ticket", response_model=AdoptResponse)
async def fetch_and_register_ticket(payload: AdoptRequest) -> AdoptResponse:
    """Adopt an existing Intercom ticket for two-way sync."""
    return await app.state.service.adopt(payload.ticket_id, payload.discord_channel_id)


@app.post("/close-ticket", response_model=CloseResponse)
async def close_ticket(payload: CloseRequest) -> CloseResponse:
    return await app.state.service.close(payload)


@app.get("/tracked-channels", response_model=TrackedChannelsResponse)
def tracked_channels() -> TrackedChannelsResponse:
    return app.state.service.tracked_channels()
