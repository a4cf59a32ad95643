"""Two-way message relay between Discord channels and Intercom tickets."""

from __future__ import annotations

import logging
from typing import Any, Literal, Protocol

from bridge.errors import UpstreamError
from bridge.integrations.discord import is_text_channel
from bridge.logging import bind_channel
from bridge.registry import BindingStore
from bridge.schemas import ChannelBinding, RelayOutcome

LOGGER = logging.getLogger(__name__)

DISCORD_MESSAGE_LIMIT = 2000
REACTION_OK = "✅"
REACTION_FAILED = "❌"


class ReplyAPI(Protocol):
    async def get_ticket(self, ticket_id: str) -> dict[str, Any]: ...

    async def reply_to_ticket(self, ticket_id: str, body: str, contact_id: str | None) -> dict[str, Any]: ...

    async def reply_to_conversation(self, conversation_id: str, body: str, contact_id: str | None) -> dict[str, Any]: ...


class ChatAPI(Protocol):
    async def fetch_channel(self, channel_id: str) -> dict[str, Any] | None: ...

    async def send_message(self, channel_id: str, content: str) -> dict[str, Any]: ...

    async def add_reaction(self, channel_id: str, message_id: str, emoji: str) -> None: ...


def format_chat_message(author_name: str, body: str) -> str:
    content = f"**{author_name} (Intercom):**\n{body}"
    if len(content) > DISCORD_MESSAGE_LIMIT:
        content = content[: DISCORD_MESSAGE_LIMIT - 1] + "…"
    return content


class MessageRelay:
    """Forwards chat messages to tickets and agent replies back to chat."""

    def __init__(
        self,
        bindings: BindingStore,
        intercom: ReplyAPI | None,
        discord: ChatAPI | None,
        reply_target: Literal["ticket", "conversation"] = "ticket",
    ) -> None:
        self.bindings = bindings
        self.intercom = intercom
        self.discord = discord
        self.reply_target = reply_target

    async def relay_to_ticket(
        self,
        channel_id: str,
        author_is_bot: bool,
        body: str,
        message_id: str | None = None,
    ) -> RelayOutcome:
        """Post a Discord message as a user reply on the bound ticket."""
        # Bridge-authored messages include everything relayed from Intercom.
        if author_is_bot:
            return "ignored_self"

        binding = self.bindings.get(channel_id)
        if binding is None:
            return "unbound"
        if not body.strip():
            return "empty"

        with bind_channel(channel_id):
            if self.intercom is None:
                LOGGER.error("intercom token not configured", extra={"event": "relay_unconfigured", "context": {}})
                await self._react(channel_id, message_id, REACTION_FAILED)
                return "failed"
            try:
                await self._post_reply(binding, body)
            except UpstreamError as exc:
                LOGGER.error(
                    "forwarding to intercom failed",
                    extra={
                        "event": "relay_to_ticket_failed",
                        "context": {"ticket_id": binding.ticket_id, "error": exc.message, "details": exc.details},
                    },
                )
                await self._react(channel_id, message_id, REACTION_FAILED)
                return "failed"

            LOGGER.info(
                "message forwarded to intercom",
                extra={
                    "event": "relay_to_ticket",
                    "context": {"ticket_id": binding.ticket_id, "target": self.reply_target},
                },
            )
            await self._react(channel_id, message_id, REACTION_OK)
            return "forwarded"

    async def relay_to_chat(self, channel_id: str, author_name: str, body: str) -> RelayOutcome:
        """Post an agent reply into a Discord channel."""
        with bind_channel(channel_id):
            if self.discord is None:
                LOGGER.error("discord token not configured", extra={"event": "relay_unconfigured", "context": {}})
                return "failed"
            try:
                channel = await self.discord.fetch_channel(channel_id)
                if channel is None:
                    LOGGER.warning("discord channel not found", extra={"event": "channel_not_found", "context": {}})
                    return "channel_not_found"
                if not is_text_channel(channel):
                    LOGGER.warning(
                        "discord channel is not text based",
                        extra={"event": "channel_not_text", "context": {"type": channel.get("type")}},
                    )
                    return "not_text_channel"
                await self.discord.send_message(channel_id, format_chat_message(author_name, body))
            except UpstreamError as exc:
                LOGGER.error(
                    "sending to discord failed",
                    extra={"event": "relay_to_chat_failed", "context": {"error": exc.message, "details": exc.details}},
                )
                return "failed"

            LOGGER.info("message sent to discord", extra={"event": "relay_to_chat", "context": {"author": author_name}})
            return "forwarded"

    async def _post_reply(self, binding: ChannelBinding, body: str) -> None:
        if self.reply_target == "conversation":
            ticket = await self.intercom.get_ticket(binding.ticket_id)
            conversation_id = _conversation_id(ticket) or binding.ticket_id
            await self.intercom.reply_to_conversation(conversation_id, body, binding.contact_id)
            return
        await self.intercom.reply_to_ticket(binding.ticket_id, body, binding.contact_id)

    async def _react(self, channel_id: str, message_id: str | None, emoji: str) -> None:
        if self.discord is None or not message_id:
            return
        try:
            await self.discord.add_reaction(channel_id, message_id, emoji)
        except UpstreamError as exc:
            LOGGER.warning(
                "reaction failed",
                extra={"event": "reaction_failed", "context": {"message_id": message_id, "error": exc.message}},
            )


def _conversation_id(ticket: dict[str, Any]) -> str | None:
    # Intercom tickets are conversations; the ticket id doubles as the conversation id.
    conversation = ticket.get("conversation") or {}
    value = ticket.get("conversation_id") or conversation.get("id") or ticket.get("id")
    return str(value) if value else None
