"""Webhook classifier tests."""

from __future__ import annotations

import asyncio

from bridge.classifier import WebhookClassifier, strip_markup
from bridge.composer import compose
from bridge.config import DEFAULT_RELAY_TOPICS
from bridge.schemas import ConversationReplyEvent, IgnoredEvent, TicketIntake, TicketReplyEvent


def _classifier(**kwargs) -> WebhookClassifier:
    return WebhookClassifier(DEFAULT_RELAY_TOPICS, **kwargs)


def _ticket_reply(author_type: str = "admin", description: str = "Intro\nChannel ID: C1\nTicket ID: T1") -> dict:
    return {
        "topic": "ticket.admin.replied",
        "data": {
            "item": {
                "ticket": {"id": "77", "ticket_attributes": {"_default_description_": description}},
                "ticket_part": {"author": {"type": author_type, "name": "Ana"}, "body": "Hello"},
            }
        },
    }


def test_admin_ticket_reply_is_relay_target() -> None:
    event = asyncio.run(_classifier().classify(_ticket_reply()))

    assert isinstance(event, TicketReplyEvent)
    assert event.channel_id == "C1"
    assert event.author_name == "Ana"
    assert event.body == "Hello"
    assert event.source_id == "77"


def test_ping_topic_ignored() -> None:
    event = asyncio.run(_classifier().classify({"topic": "ping", "data": {"item": {}}}))

    assert isinstance(event, IgnoredEvent)
    assert event.reason == "topic"


def test_user_authored_topic_and_part_ignored() -> None:
    user_topic = _ticket_reply()
    user_topic["topic"] = "conversation.user.replied"
    assert asyncio.run(_classifier().classify(user_topic)).reason == "topic"

    user_part = _ticket_reply(author_type="user")
    assert asyncio.run(_classifier().classify(user_part)).reason == "author"


def test_bot_author_is_relayed() -> None:
    event = asyncio.run(_classifier().classify(_ticket_reply(author_type="bot")))
    assert isinstance(event, TicketReplyEvent)


def test_missing_marker_drops_event() -> None:
    event = asyncio.run(_classifier().classify(_ticket_reply(description="no markers here")))

    assert isinstance(event, IgnoredEvent)
    assert event.reason == "no_channel"


def test_missing_marker_fetches_ticket(fake_intercom) -> None:
    fake_intercom.tickets["77"] = {"id": "77", "ticket_attributes": {"_default_description_": "Channel ID: 4242"}}

    event = asyncio.run(_classifier(fetcher=fake_intercom).classify(_ticket_reply(description="")))

    assert event.channel_id == "4242"
    assert fake_intercom.calls == ["get_ticket"]


def test_fetch_failure_is_classification_failure(fake_intercom) -> None:
    event = asyncio.run(_classifier(fetcher=fake_intercom).classify(_ticket_reply(description="")))

    assert isinstance(event, IgnoredEvent)
    assert event.reason == "no_channel"


def test_structured_attribute_preferred_over_marker() -> None:
    payload = _ticket_reply()
    payload["data"]["item"]["ticket"]["ticket_attributes"]["discord_channel_id"] = "C9"

    event = asyncio.run(_classifier(channel_attribute="discord_channel_id").classify(payload))

    assert event.channel_id == "C9"


def test_native_conversation_payload_uses_latest_part() -> None:
    payload = {
        "topic": "conversation.admin.replied",
        "id": "notif_1",
        "data": {
            "item": {
                "type": "conversation",
                "id": "555",
                "source": {"body": "<p>Opened</p><p>Channel ID: 123456</p>"},
                "conversation_parts": {
                    "conversation_parts": [
                        {"author": {"type": "user", "name": "Player"}, "body": "<p>first</p>"},
                        {"author": {"type": "admin", "name": "Ana"}, "body": "<p>Fixed &amp; done</p>"},
                    ]
                },
            }
        },
    }

    event = asyncio.run(_classifier().classify(payload))

    assert isinstance(event, ConversationReplyEvent)
    assert event.channel_id == "123456"
    assert event.body == "Fixed & done"


def test_markup_kept_when_stripping_disabled() -> None:
    payload = _ticket_reply()
    payload["data"]["item"]["ticket_part"]["body"] = "<b>Hi</b>"

    event = asyncio.run(_classifier(strip_html=False).classify(payload))

    assert event.body == "<b>Hi</b>"


def test_empty_body_ignored() -> None:
    payload = _ticket_reply()
    payload["data"]["item"]["ticket_part"]["body"] = "<p></p>"

    assert asyncio.run(_classifier().classify(payload)).reason == "empty_body"


def test_missing_author_name_defaults() -> None:
    payload = _ticket_reply()
    del payload["data"]["item"]["ticket_part"]["author"]["name"]

    assert asyncio.run(_classifier().classify(payload)).author_name == "Support"


def test_malformed_data_ignored() -> None:
    event = asyncio.run(_classifier().classify({"topic": "ticket.admin.replied", "data": "oops"}))
    assert event.reason == "malformed"


def test_strip_markup_keeps_line_breaks() -> None:
    assert strip_markup("<p>one</p><p>two<br/>three</p>") == "one\ntwo\nthree"


def test_channel_named_in_form_answer_does_not_reroute_reply() -> None:
    intake = TicketIntake(
        guild_id="G1",
        user_id="5",
        ticket_id="T1",
        ticket_channel_id="111",
        form_data={"Which channel is broken?": "Channel ID: 999"},
    )

    event = asyncio.run(_classifier().classify(_ticket_reply(description=compose(intake).description)))

    assert isinstance(event, TicketReplyEvent)
    assert event.channel_id == "111"
