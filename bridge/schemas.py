"""Pydantic schemas for API payloads and bridge records."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

RelayOutcome = Literal[
    "forwarded",
    "ignored_self",
    "unbound",
    "empty",
    "channel_not_found",
    "not_text_channel",
    "failed",
]


class TicketIntake(BaseModel):
    """Payload posted by the Discord ticket bot when a ticket channel opens."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    guild_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    source_ticket_id: str = Field(..., min_length=1, alias="ticket_id")
    channel_id: str | None = Field(default=None, alias="ticket_channel_id")
    form_data: dict[str, Any] = Field(default_factory=dict)
    email: str | None = Field(default=None, alias="user_email")
    subject: str | None = None
    content: str | None = None
    username: str | None = None
    panel_name: str | None = None
    is_new_ticket: bool | None = None
    opened_at: str | None = None


class ComposedTicket(BaseModel):
    """Title and description ready to submit."""

    title: str
    description: str


class SubmittedTicket(BaseModel):
    """Identifiers returned by Intercom for a new ticket."""

    ticket_id: str
    status: str | None = None


class ChannelBinding(BaseModel):
    """Association between one Discord channel and one Intercom ticket."""

    model_config = ConfigDict(frozen=True)

    ticket_id: str
    contact_id: str | None = None
    user_id: str | None = None
    registered_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class TicketUser(BaseModel):
    """User block of the create-ticket response."""

    username: str | None = None
    discord_id: str
    intercom_contact_id: str | None = None


class CreateTicketResponse(BaseModel):
    """Response returned by POST /tickets-to-intercom."""

    success: bool = True
    intercom_ticket_id: str
    intercom_status: str | None = None
    ticket: dict[str, Any]
    user: TicketUser
    registration_scheduled: bool = False
    message: str = "Ticket created successfully in Intercom"


class RegisterRequest(BaseModel):
    """Payload for POST /register-ticket."""

    discord_channel_id: str = Field(..., min_length=1)
    intercom_ticket_id: str = Field(..., min_length=1)
    intercom_contact_id: str | None = None
    user_id: str | None = None


class UnregisterRequest(BaseModel):
    """Payload for POST /unregister-ticket."""

    discord_channel_id: str = Field(..., min_length=1)


class AdoptRequest(BaseModel):
    """Payload for POST /fetch-and-register-ticket."""

    ticket_id: str = Field(..., min_length=1)
    discord_channel_id: str = Field(..., min_length=1)


class AdoptResponse(BaseModel):
    """Result of adopting an existing Intercom ticket."""

    success: bool = True
    ticket_id: str
    contact_id: str
    user_id: str | None = None
    title: str | None = None


class CloseRequest(BaseModel):
    """Payload for POST /close-ticket."""

    ticket_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    user_email: str | None = None
    discord_channel_id: str | None = None


class CloseResponse(BaseModel):
    """Best-effort close result; closed=False is not an error."""

    success: bool = True
    closed: bool
    intercom_ticket_id: str | None = None
    reason: str | None = None


class ChatAuthor(BaseModel):
    """Discord message author."""

    id: str
    bot: bool = False
    username: str | None = None


class ChatMessage(BaseModel):
    """Discord message forwarded by the gateway worker."""

    channel_id: str = Field(..., min_length=1)
    message_id: str | None = None
    author: ChatAuthor
    content: str = ""


class SendToChatRequest(BaseModel):
    """Payload for POST /send-to-discord."""

    channel_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    author_name: str = "Support"


class RelayResponse(BaseModel):
    """Outcome of a single relay attempt."""

    success: bool
    outcome: RelayOutcome


class TrackedChannel(BaseModel):
    """One entry of GET /tracked-channels."""

    discord_channel_id: str
    intercom_ticket_id: str
    intercom_contact_id: str | None = None
    user_id: str | None = None
    registered_at: datetime


class TrackedChannelsResponse(BaseModel):
    """Registry snapshot."""

    total: int
    channels: list[TrackedChannel]


class WebhookAck(BaseModel):
    """Immediate acknowledgement for Intercom webhook deliveries."""

    received: Literal[True] = True


class HealthResponse(BaseModel):
    """Healthcheck response model."""

    status: Literal["ok"] = "ok"
    app: str
    tracked_channels: int = 0


class ReplyEvent(BaseModel):
    """Relay-worthy admin or bot reply."""

    topic: str
    channel_id: str
    author_name: str
    body: str
    source_id: str | None = None


class TicketReplyEvent(ReplyEvent):
    """Reply posted on an Intercom ticket."""

    kind: Literal["ticket_reply"] = "ticket_reply"


class ConversationReplyEvent(ReplyEvent):
    """Reply posted on the conversation underneath a ticket."""

    kind: Literal["conversation_reply"] = "conversation_reply"


class IgnoredEvent(BaseModel):
    """Webhook delivery that must not be relayed."""

    kind: Literal["ignored"] = "ignored"
    topic: str | None = None
    reason: Literal["topic", "author", "no_channel", "empty_body", "malformed"]


ClassifiedEvent = TicketReplyEvent | ConversationReplyEvent | IgnoredEvent
