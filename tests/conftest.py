"""Shared fakes for Intercom and Discord."""

from __future__ import annotations

from typing import Any

import pytest

from bridge.config import Settings
from bridge.errors import UpstreamError


class FakeIntercom:
    """In-memory stand-in for IntercomClient."""

    def __init__(self) -> None:
        self.contacts: list[dict[str, Any]] = []
        self.tickets: dict[str, dict[str, Any]] = {}
        self.conversations: dict[str, dict[str, Any]] = {}
        self.replies: list[tuple[str, str, str, str | None]] = []
        self.calls: list[str] = []
        self.failing: set[str] = set()

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failing:
            raise UpstreamError("intercom", f"{name} failed", status_code=500, details={"errors": [{"message": "boom"}]})

    async def search_contacts(self, field: str, value: str) -> list[dict[str, Any]]:
        self._call("search_contacts")
        return [contact for contact in self.contacts if contact.get(field) == value]

    async def create_contact(self, fields: dict[str, Any]) -> dict[str, Any]:
        self._call("create_contact")
        contact = {"id": f"contact-{len(self.contacts) + 1}", **fields}
        self.contacts.append(contact)
        return contact

    async def create_ticket(
        self,
        ticket_type_id: str,
        contacts: list[dict[str, str]],
        attributes: dict[str, Any],
    ) -> dict[str, Any]:
        self._call("create_ticket")
        ticket_id = str(1000 + len(self.tickets))
        ticket = {
            "id": ticket_id,
            "ticket_type_id": ticket_type_id,
            "contacts": {"contacts": contacts},
            "ticket_attributes": attributes,
            "ticket_state": "submitted",
        }
        self.tickets[ticket_id] = ticket
        return ticket

    async def get_ticket(self, ticket_id: str) -> dict[str, Any]:
        self._call("get_ticket")
        if ticket_id not in self.tickets:
            raise UpstreamError("intercom", "Ticket not found", status_code=404)
        return self.tickets[ticket_id]

    async def search_tickets(self, query: dict[str, Any]) -> list[dict[str, Any]]:
        self._call("search_tickets")
        return [
            ticket
            for ticket in self.tickets.values()
            if any(contact.get("id") == query["value"] for contact in ticket["contacts"]["contacts"])
        ]

    async def update_ticket(self, ticket_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        self._call("update_ticket")
        self.tickets[ticket_id].update(fields)
        return self.tickets[ticket_id]

    async def reply_to_ticket(self, ticket_id: str, body: str, contact_id: str | None) -> dict[str, Any]:
        self._call("reply_to_ticket")
        self.replies.append(("ticket", ticket_id, body, contact_id))
        return {"type": "ticket_part"}

    async def get_conversation(self, conversation_id: str) -> dict[str, Any]:
        self._call("get_conversation")
        if conversation_id not in self.conversations:
            raise UpstreamError("intercom", "Conversation not found", status_code=404)
        return self.conversations[conversation_id]

    async def reply_to_conversation(self, conversation_id: str, body: str, contact_id: str | None) -> dict[str, Any]:
        self._call("reply_to_conversation")
        self.replies.append(("conversation", conversation_id, body, contact_id))
        return {"type": "conversation"}


class FakeDiscord:
    """In-memory stand-in for DiscordClient."""

    def __init__(self) -> None:
        self.channels: dict[str, dict[str, Any]] = {}
        self.sent: list[tuple[str, str]] = []
        self.reactions: list[tuple[str, str, str]] = []
        self.calls: list[str] = []
        self.failing: set[str] = set()

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failing:
            raise UpstreamError("discord", f"{name} failed", status_code=500)

    async def fetch_channel(self, channel_id: str) -> dict[str, Any] | None:
        self._call("fetch_channel")
        return self.channels.get(channel_id)

    async def send_message(self, channel_id: str, content: str) -> dict[str, Any]:
        self._call("send_message")
        self.sent.append((channel_id, content))
        return {"id": f"m{len(self.sent)}"}

    async def add_reaction(self, channel_id: str, message_id: str, emoji: str) -> None:
        self._call("add_reaction")
        self.reactions.append((channel_id, message_id, emoji))


@pytest.fixture
def fake_intercom() -> FakeIntercom:
    return FakeIntercom()


@pytest.fixture
def fake_discord() -> FakeDiscord:
    discord = FakeDiscord()
    discord.channels["C1"] = {"id": "C1", "type": 0}
    return discord


@pytest.fixture
def settings() -> Settings:
    return Settings(
        intercom_token="tok",
        intercom_ticket_type_id="type-1",
        discord_bot_token="bot",
        discord_bot_user_id="BOT",
        redis_url=None,
        intercom_channel_attribute=None,
    )
