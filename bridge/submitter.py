"""Intercom ticket submission."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from bridge.errors import UpstreamError
from bridge.schemas import ComposedTicket, SubmittedTicket

LOGGER = logging.getLogger(__name__)


class TicketsAPI(Protocol):
    async def create_ticket(
        self,
        ticket_type_id: str,
        contacts: list[dict[str, str]],
        attributes: dict[str, Any],
    ) -> dict[str, Any]: ...


class TicketSubmitter:
    """Sends a composed ticket to Intercom."""

    def __init__(self, tickets: TicketsAPI, channel_attribute: str | None = None) -> None:
        self.tickets = tickets
        self.channel_attribute = channel_attribute

    async def submit(
        self,
        type_id: str,
        contact_id: str | None,
        user_id: str,
        composed: ComposedTicket,
        channel_id: str | None = None,
    ) -> SubmittedTicket:
        """Create the ticket; UpstreamError propagates to the caller."""
        contacts = [{"id": contact_id}] if contact_id else [{"external_id": user_id}]
        attributes: dict[str, Any] = {
            "_default_title_": composed.title,
            "_default_description_": composed.description,
        }
        if self.channel_attribute and channel_id:
            attributes[self.channel_attribute] = channel_id

        created = await self.tickets.create_ticket(type_id, contacts, attributes)
        raw_id = created.get("id") or created.get("ticket_id")
        if not raw_id:
            raise UpstreamError("intercom", "Intercom ticket response carried no id", details=created)
        ticket = SubmittedTicket(ticket_id=str(raw_id), status=_state(created))
        LOGGER.info(
            "ticket created",
            extra={
                "event": "ticket_created",
                "context": {
                    "ticket_id": ticket.ticket_id,
                    "status": ticket.status,
                    "contact_ref": "id" if contact_id else "external_id",
                },
            },
        )
        return ticket


def _state(ticket: dict[str, Any]) -> str | None:
    # Newer API versions return ticket_state as an object.
    state = ticket.get("ticket_state") or ticket.get("status")
    if isinstance(state, dict):
        return state.get("category") or state.get("internal_label")
    return state
