"""Bridge service: ticket creation, channel bindings and relay entry points."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from redis.exceptions import RedisError

from bridge.classifier import WebhookClassifier
from bridge.composer import compose, parse_source_ticket_id, parse_user_id, resolve_email
from bridge.config import Settings
from bridge.contacts import ContactResolver
from bridge.dedup import DedupCache, idempotency_key
from bridge.errors import BridgeError, RequestValidationFailure
from bridge.integrations.discord import DiscordClient
from bridge.integrations.intercom import IntercomClient
from bridge.registry import BindingStore
from bridge.relay import MessageRelay
from bridge.schemas import (
    AdoptResponse,
    ChannelBinding,
    ChatMessage,
    ClassifiedEvent,
    CloseRequest,
    CloseResponse,
    CreateTicketResponse,
    IgnoredEvent,
    RelayOutcome,
    TicketIntake,
    TicketUser,
    TrackedChannel,
    TrackedChannelsResponse,
)
from bridge.submitter import TicketSubmitter

LOGGER = logging.getLogger(__name__)

ErrorSink = Callable[[str, BaseException, dict[str, Any]], None]


def log_error_sink(operation: str, exc: BaseException, context: dict[str, Any]) -> None:
    """Default sink for failures of work that runs after the response was sent."""
    LOGGER.error(
        f"{operation} failed",
        exc_info=exc,
        extra={"event": f"{operation}_failed", "context": context},
    )


class BridgeService:
    """Coordinates contact resolution, ticket submission, bindings and relays."""

    def __init__(
        self,
        settings: Settings,
        bindings: BindingStore,
        intercom: IntercomClient | None = None,
        discord: DiscordClient | None = None,
        dedup: DedupCache | None = None,
        error_sink: ErrorSink = log_error_sink,
    ) -> None:
        self.settings = settings
        self.bindings = bindings
        self.intercom = intercom
        self.discord = discord
        self.dedup = dedup
        self.error_sink = error_sink
        self.relay = MessageRelay(bindings, intercom, discord, reply_target=settings.reply_target)
        self.classifier = WebhookClassifier(
            settings.relay_topics,
            fetcher=intercom,
            channel_attribute=settings.intercom_channel_attribute,
            strip_html=settings.strip_reply_html,
        )

    def credentials(self, authorization: str | None, ticket_type_id: str | None) -> tuple[str, str]:
        """Resolve the Intercom token and ticket type from headers, then config."""
        token = None
        if authorization:
            scheme, _, credential = authorization.strip().partition(" ")
            if scheme.lower() != "bearer":
                credential = authorization
            token = credential.strip() or None
        token = token or self.settings.intercom_token
        type_id = (ticket_type_id or "").strip() or self.settings.intercom_ticket_type_id
        if not token or not type_id:
            raise RequestValidationFailure("Missing required headers: Authorization and X-Ticket-Type-Id")
        return token, type_id

    async def create_ticket(
        self,
        intake: TicketIntake,
        token: str,
        ticket_type_id: str,
        idempotency: str | None = None,
    ) -> CreateTicketResponse:
        """Resolve the contact, compose and submit the ticket.

        Registration of the channel binding is left to the caller so it can run
        after the response has been sent (see ``register_detached``).
        """
        start = time.monotonic()
        key = idempotency_key(intake, idempotency)
        cached = self._dedup_check("ticket", key)
        if cached is not None:
            LOGGER.info(
                "dedup hit",
                extra={"event": "ticket_dedup_hit", "context": {"source_ticket_id": intake.source_ticket_id}},
            )
            return CreateTicketResponse.model_validate_json(cached)

        client = self._intercom_for(token)
        contact_id = await ContactResolver(client).resolve(intake.user_id, resolve_email(intake), intake.username)
        composed = compose(intake)
        submitted = await TicketSubmitter(client, self.settings.intercom_channel_attribute).submit(
            ticket_type_id,
            contact_id,
            intake.user_id,
            composed,
            channel_id=intake.channel_id,
        )

        response = CreateTicketResponse(
            intercom_ticket_id=submitted.ticket_id,
            intercom_status=submitted.status,
            ticket={
                "id": intake.source_ticket_id,
                "discord_id": intake.source_ticket_id,
                "status": "created_in_intercom",
                "panel": intake.panel_name,
            },
            user=TicketUser(username=intake.username, discord_id=intake.user_id, intercom_contact_id=contact_id),
            registration_scheduled=bool(intake.channel_id),
        )
        self._dedup_set("ticket", key, response.model_dump_json())
        LOGGER.info(
            "intake processed",
            extra={
                "event": "intake_processed",
                "context": {
                    "source_ticket_id": intake.source_ticket_id,
                    "ticket_id": submitted.ticket_id,
                    "contact_resolved": contact_id is not None,
                    "latency_ms": round((time.monotonic() - start) * 1000),
                },
            },
        )
        return response

    def register(
        self,
        channel_id: str,
        ticket_id: str,
        contact_id: str | None,
        user_id: str | None,
    ) -> ChannelBinding:
        binding = ChannelBinding(ticket_id=ticket_id, contact_id=contact_id, user_id=user_id)
        self.bindings.put(channel_id, binding)
        return binding

    async def register_detached(
        self,
        channel_id: str,
        ticket_id: str,
        contact_id: str | None,
        user_id: str | None,
    ) -> None:
        """Registration side effect run after the create response is sent.

        The ticket already exists at this point; failures go to the error sink
        and the channel has to be adopted again by hand.
        """
        try:
            self.register(channel_id, ticket_id, contact_id, user_id)
        except Exception as exc:
            self.error_sink("registration", exc, {"channel_id": channel_id, "ticket_id": ticket_id})

    def unregister(self, channel_id: str) -> bool:
        return self.bindings.remove(channel_id)

    async def adopt(self, ticket_id: str, channel_id: str) -> AdoptResponse:
        """Bind a channel to an existing Intercom ticket."""
        client = self._configured_intercom()
        ticket = await client.get_ticket(ticket_id)
        contacts = (ticket.get("contacts") or {}).get("contacts") or []
        contact_id = contacts[0].get("id") if contacts else None
        if not contact_id:
            raise RequestValidationFailure("No contact found in ticket")

        attributes = ticket.get("ticket_attributes") or {}
        user_id = parse_user_id(attributes.get("_default_description_"))
        self.register(channel_id, ticket_id, str(contact_id), user_id)
        LOGGER.info(
            "existing ticket adopted",
            extra={"event": "ticket_adopted", "context": {"ticket_id": ticket_id, "channel_id": channel_id}},
        )
        return AdoptResponse(
            ticket_id=ticket_id,
            contact_id=str(contact_id),
            user_id=user_id,
            title=attributes.get("_default_title_"),
        )

    async def close(self, request: CloseRequest) -> CloseResponse:
        """Find the ticket created for a Discord ticket and resolve it."""
        client = self._configured_intercom()
        if request.discord_channel_id:
            self.unregister(request.discord_channel_id)

        contact_id = await ContactResolver(client).lookup(request.user_id, request.user_email)
        if contact_id is None:
            return CloseResponse(closed=False, reason="contact_not_found")

        tickets = await client.search_tickets({"field": "contact_ids", "operator": "=", "value": contact_id})
        match = next(
            (
                ticket
                for ticket in tickets
                if parse_source_ticket_id((ticket.get("ticket_attributes") or {}).get("_default_description_"))
                == request.ticket_id
            ),
            None,
        )
        if match is None:
            return CloseResponse(closed=False, reason="ticket_not_found")

        intercom_ticket_id = str(match["id"])
        await client.update_ticket(intercom_ticket_id, {"state": "resolved"})
        LOGGER.info(
            "ticket closed",
            extra={"event": "ticket_closed", "context": {"ticket_id": intercom_ticket_id}},
        )
        return CloseResponse(closed=True, intercom_ticket_id=intercom_ticket_id)

    async def handle_chat_message(self, message: ChatMessage) -> RelayOutcome:
        """Relay a Discord message to its bound ticket."""
        author = message.author
        own_account = self.settings.discord_bot_user_id is not None and author.id == self.settings.discord_bot_user_id
        return await self.relay.relay_to_ticket(
            message.channel_id,
            author.bot or own_account,
            message.content,
            message_id=message.message_id,
        )

    async def handle_webhook(self, payload: dict[str, Any]) -> ClassifiedEvent | None:
        """Classify one Intercom delivery and relay it; runs after the ack."""
        delivery_id = payload.get("id")
        if delivery_id and not self._dedup_claim("webhook", str(delivery_id)):
            LOGGER.info(
                "duplicate webhook delivery",
                extra={"event": "webhook_dedup_hit", "context": {"delivery_id": delivery_id}},
            )
            return None

        event = await self.classifier.classify(payload)
        if isinstance(event, IgnoredEvent):
            LOGGER.info(
                "webhook ignored",
                extra={"event": "webhook_ignored", "context": {"topic": event.topic, "reason": event.reason}},
            )
            return event

        outcome = await self.relay.relay_to_chat(event.channel_id, event.author_name, event.body)
        LOGGER.info(
            "webhook relayed",
            extra={
                "event": "webhook_relayed",
                "context": {"topic": event.topic, "kind": event.kind, "outcome": outcome},
            },
        )
        return event

    async def run_webhook(self, payload: dict[str, Any]) -> None:
        """Background wrapper: relay failures are reported, never raised."""
        try:
            await self.handle_webhook(payload)
        except Exception as exc:
            self.error_sink("webhook_relay", exc, {"topic": payload.get("topic")})

    async def send_to_chat(self, channel_id: str, author_name: str, message: str) -> RelayOutcome:
        return await self.relay.relay_to_chat(channel_id, author_name, message)

    def tracked_channels(self) -> TrackedChannelsResponse:
        channels = [
            TrackedChannel(
                discord_channel_id=channel_id,
                intercom_ticket_id=binding.ticket_id,
                intercom_contact_id=binding.contact_id,
                user_id=binding.user_id,
                registered_at=binding.registered_at,
            )
            for channel_id, binding in self.bindings.all().items()
        ]
        return TrackedChannelsResponse(total=len(channels), channels=channels)

    def _intercom_for(self, token: str) -> IntercomClient:
        if self.intercom is not None and token == self.settings.intercom_token:
            return self.intercom
        return IntercomClient(
            token,
            base_url=self.settings.intercom_api_base,
            api_version=self.settings.intercom_api_version,
            timeout=self.settings.http_timeout_seconds,
        )

    def _configured_intercom(self) -> IntercomClient:
        if self.intercom is None:
            raise BridgeError("No Intercom token configured")
        return self.intercom

    def _dedup_check(self, namespace: str, key: str) -> str | None:
        if self.dedup is None:
            return None
        try:
            return self.dedup.check(namespace, key)
        except RedisError:
            LOGGER.warning("dedup cache unavailable", extra={"event": "dedup_bypass", "context": {}})
            return None

    def _dedup_set(self, namespace: str, key: str, value: str) -> None:
        if self.dedup is None:
            return
        try:
            self.dedup.set(namespace, key, value)
        except RedisError:
            LOGGER.warning("dedup cache unavailable", extra={"event": "dedup_bypass", "context": {}})

    def _dedup_claim(self, namespace: str, key: str) -> bool:
        if self.dedup is None:
            return True
        try:
            return self.dedup.claim(namespace, key)
        except RedisError:
            LOGGER.warning("dedup cache unavailable", extra={"event": "dedup_bypass", "context": {}})
            return True
