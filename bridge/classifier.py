"""Classification of inbound Intercom webhook notifications."""

from __future__ import annotations

import html
import logging
import re
from collections.abc import Iterable
from typing import Any, Protocol

from bridge.composer import parse_channel_id
from bridge.errors import UpstreamError
from bridge.schemas import ClassifiedEvent, ConversationReplyEvent, IgnoredEvent, TicketReplyEvent

LOGGER = logging.getLogger(__name__)

RELAY_AUTHOR_TYPES = frozenset({"admin", "bot"})
DEFAULT_AUTHOR_NAME = "Support"

_BREAK_TAGS = re.compile(r"<\s*(br|/p|/div|/li)\s*/?\s*>", flags=re.IGNORECASE)
_TAGS = re.compile(r"<[^>]+>")
_BLANK_RUNS = re.compile(r"\n{3,}")


class ItemFetcher(Protocol):
    async def get_ticket(self, ticket_id: str) -> dict[str, Any]: ...

    async def get_conversation(self, conversation_id: str) -> dict[str, Any]: ...


def strip_markup(body: str) -> str:
    """Convert Intercom reply HTML into plain text."""
    text = _BREAK_TAGS.sub("\n", body)
    text = _TAGS.sub("", text)
    text = html.unescape(text)
    return _BLANK_RUNS.sub("\n\n", text).strip()


class WebhookClassifier:
    """Decides whether a webhook is an agent reply and where it must go."""

    def __init__(
        self,
        relay_topics: Iterable[str],
        fetcher: ItemFetcher | None = None,
        channel_attribute: str | None = None,
        strip_html: bool = True,
    ) -> None:
        self.relay_topics = frozenset(relay_topics)
        self.fetcher = fetcher
        self.channel_attribute = channel_attribute
        self.strip_html = strip_html

    async def classify(self, payload: dict[str, Any]) -> ClassifiedEvent:
        topic = payload.get("topic")
        if not isinstance(topic, str) or topic not in self.relay_topics:
            return IgnoredEvent(topic=topic if isinstance(topic, str) else None, reason="topic")

        data = payload.get("data")
        item = data.get("item") if isinstance(data, dict) else None
        if not isinstance(item, dict):
            return IgnoredEvent(topic=topic, reason="malformed")

        kind, obj, part = _unpack(topic, item)
        if not isinstance(obj, dict) or not isinstance(part, dict):
            return IgnoredEvent(topic=topic, reason="malformed")

        author = part.get("author") or {}
        if author.get("type") not in RELAY_AUTHOR_TYPES:
            return IgnoredEvent(topic=topic, reason="author")

        channel_id = self._channel_from(obj)
        if channel_id is None and obj.get("id") and self.fetcher is not None:
            channel_id = await self._channel_from_fetch(kind, str(obj["id"]))
        if channel_id is None:
            LOGGER.warning(
                "webhook has no channel marker, dropping",
                extra={"event": "webhook_no_channel", "context": {"topic": topic, "item_id": obj.get("id")}},
            )
            return IgnoredEvent(topic=topic, reason="no_channel")

        body = str(part.get("body") or "")
        if self.strip_html:
            body = strip_markup(body)
        if not body.strip():
            return IgnoredEvent(topic=topic, reason="empty_body")

        fields = {
            "topic": topic,
            "channel_id": channel_id,
            "author_name": author.get("name") or DEFAULT_AUTHOR_NAME,
            "body": body,
            "source_id": str(obj["id"]) if obj.get("id") else None,
        }
        if kind == "ticket":
            return TicketReplyEvent(**fields)
        return ConversationReplyEvent(**fields)

    def _channel_from(self, obj: dict[str, Any]) -> str | None:
        attributes = obj.get("ticket_attributes") or {}
        nested_ticket = obj.get("ticket") or {}
        if self.channel_attribute:
            structured = attributes.get(self.channel_attribute) or (
                (nested_ticket.get("ticket_attributes") or {}).get(self.channel_attribute)
            )
            if structured:
                return str(structured)

        candidates = (
            attributes.get("_default_description_"),
            (nested_ticket.get("ticket_attributes") or {}).get("_default_description_"),
            (obj.get("source") or {}).get("body"),
        )
        for text in candidates:
            channel_id = parse_channel_id(text)
            if channel_id:
                return channel_id
        return None

    async def _channel_from_fetch(self, kind: str, item_id: str) -> str | None:
        try:
            if kind == "ticket":
                fetched = await self.fetcher.get_ticket(item_id)
            else:
                fetched = await self.fetcher.get_conversation(item_id)
        except UpstreamError as exc:
            LOGGER.warning(
                "webhook item fetch failed",
                extra={"event": "webhook_fetch_failed", "context": {"kind": kind, "item_id": item_id, "error": str(exc)}},
            )
            return None
        return self._channel_from(fetched)


def _unpack(topic: str, item: dict[str, Any]) -> tuple[str, dict[str, Any] | None, dict[str, Any] | None]:
    """Return (kind, ticket-or-conversation, reply part) for either payload shape."""
    if "ticket_part" in item:
        return "ticket", item.get("ticket"), item.get("ticket_part")
    if "conversation_part" in item:
        return "conversation", item.get("conversation"), item.get("conversation_part")

    kind = item.get("type") or topic.split(".", 1)[0]
    kind = "ticket" if kind == "ticket" else "conversation"
    parts_key = f"{kind}_parts"
    parts = (item.get(parts_key) or {}).get(parts_key) or []
    part = parts[-1] if parts and isinstance(parts[-1], dict) else None
    return kind, item, part
