"""Discord gateway listener feeding channel messages into the bridge."""

from __future__ import annotations

import logging

import discord

from bridge.schemas import ChatAuthor, ChatMessage
from bridge.service import BridgeService

LOGGER = logging.getLogger(__name__)


def gateway_intents() -> discord.Intents:
    intents = discord.Intents.default()
    intents.guild_messages = True
    # Privileged; must also be enabled for the bot in the developer portal.
    intents.message_content = True
    return intents


def to_chat_message(message: discord.Message, own_user_id: int | None = None) -> ChatMessage:
    author = message.author
    return ChatMessage(
        channel_id=str(message.channel.id),
        message_id=str(message.id),
        author=ChatAuthor(
            id=str(author.id),
            bot=bool(author.bot) or (own_user_id is not None and author.id == own_user_id),
            username=getattr(author, "name", None),
        ),
        content=message.content or "",
    )


class GatewayListener(discord.Client):
    """Gateway client that relays guild messages to bound tickets."""

    def __init__(self, service: BridgeService, **options) -> None:
        super().__init__(intents=gateway_intents(), **options)
        self.service = service

    async def serve(self, token: str) -> None:
        """Connect and dispatch until closed; a failed login goes to the error sink."""
        try:
            await self.start(token)
        except Exception as exc:
            self.service.error_sink("gateway", exc, {})

    async def on_ready(self) -> None:
        LOGGER.info(
            "discord gateway connected",
            extra={
                "event": "gateway_ready",
                "context": {"user_id": str(self.user.id) if self.user else None, "guilds": len(self.guilds)},
            },
        )

    async def on_message(self, message: discord.Message) -> None:
        own_user_id = self.user.id if self.user is not None else None
        chat = to_chat_message(message, own_user_id)
        try:
            await self.service.handle_chat_message(chat)
        except Exception as exc:
            self.service.error_sink("chat_relay", exc, {"channel_id": chat.channel_id, "message_id": chat.message_id})
