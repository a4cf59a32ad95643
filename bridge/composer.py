"""Ticket title/description composition and description marker parsing."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from bridge.schemas import ComposedTicket, TicketIntake

# Webhook routing recovers these by text match; the literal prefixes must not change.
CHANNEL_MARKER = "Channel ID: "
TICKET_MARKER = "Ticket ID: "
USER_MARKER = "Discord User ID: "
GUILD_MARKER = "Guild ID: "
UNKNOWN = "Unknown"

DEFAULT_CONTENT = "Ticket opened from Discord"
PROVENANCE = "*Created via Discord Tickets v2*"

EMAIL_KEYS = (
    "email",
    "Email",
    "EMAIL",
    "Email Address",
    "Email address",
    "email address",
    "E-mail",
    "E-Mail",
    "e-mail",
    "email_address",
    "emailAddress",
    "contact_email",
    "Contact Email",
    "user_email",
)

_CHANNEL_PATTERN = re.compile(re.escape(CHANNEL_MARKER.rstrip()) + r"\s*([A-Za-z0-9_-]+)")
_USER_PATTERN = re.compile(re.escape(USER_MARKER.rstrip()) + r"\s*(\d+)")
_TICKET_PATTERN = re.compile(re.escape(TICKET_MARKER.rstrip()) + r"\s*([A-Za-z0-9_-]+)")


def compose(intake: TicketIntake) -> ComposedTicket:
    """Build the Intercom ticket title and description for an intake."""
    title = intake.subject or f"Discord Ticket #{intake.source_ticket_id}"

    description = intake.content or DEFAULT_CONTENT
    if intake.form_data:
        description += "\n\n**Form Responses:**\n"
        for question, answer in intake.form_data.items():
            description += f"• {question}: {answer}\n"

    description += "\n\n---\n"
    description += f"{PROVENANCE}\n"
    description += f"{GUILD_MARKER}{intake.guild_id}\n"
    description += f"{CHANNEL_MARKER}{intake.channel_id or UNKNOWN}\n"
    description += f"{USER_MARKER}{intake.user_id}\n"
    description += f"{TICKET_MARKER}{intake.source_ticket_id}"
    return ComposedTicket(title=title, description=description)


def extract_email(form_data: Mapping[str, Any]) -> str | None:
    """Return the first non-blank answer under a known email key, in priority order."""
    for key in EMAIL_KEYS:
        value = form_data.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def resolve_email(intake: TicketIntake) -> str | None:
    if intake.email and intake.email.strip():
        return intake.email.strip()
    return extract_email(intake.form_data)


def parse_channel_id(text: str | None) -> str | None:
    return _trailer_match(_CHANNEL_PATTERN, text)


def parse_user_id(text: str | None) -> str | None:
    return _trailer_match(_USER_PATTERN, text)


def parse_source_ticket_id(text: str | None) -> str | None:
    return _trailer_match(_TICKET_PATTERN, text)


def _trailer_match(pattern: re.Pattern[str], text: str | None) -> str | None:
    """Read a marker from the generated trailer, never from user-written text above it."""
    if not text:
        return None
    # Intercom may render the emphasis as HTML, so match the bare provenance text.
    start = text.rfind(PROVENANCE.strip("*"))
    if start != -1:
        text = text[start:]
    matches = pattern.findall(text)
    if not matches or matches[-1] == UNKNOWN:
        return None
    return matches[-1]
