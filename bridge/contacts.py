"""Discord user to Intercom contact resolution."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from bridge.errors import UpstreamError

LOGGER = logging.getLogger(__name__)


class ContactsAPI(Protocol):
    async def search_contacts(self, field: str, value: str) -> list[dict[str, Any]]: ...

    async def create_contact(self, fields: dict[str, Any]) -> dict[str, Any]: ...


class ContactResolver:
    """Finds or creates the Intercom contact behind a Discord user.

    Email is the preferred key because Intercom merges contacts across
    channels by email; the Discord user id (stored as ``external_id``) is the
    fallback so every user ends up with a contact.
    """

    def __init__(self, contacts: ContactsAPI) -> None:
        self.contacts = contacts

    async def resolve(self, user_id: str, email: str | None = None, name: str | None = None) -> str | None:
        """Return a contact id, or None when Intercom could not be reached.

        Failures never propagate: ticket submission falls back to referencing
        the user by external id.
        """
        field, value = _lookup_key(user_id, email)
        try:
            matches = await self.contacts.search_contacts(field, value)
            if matches:
                contact_id = str(matches[0]["id"])
                LOGGER.info(
                    "contact found",
                    extra={"event": "contact_found", "context": {"field": field, "contact_id": contact_id}},
                )
                return contact_id

            fields: dict[str, Any] = {"external_id": user_id, "name": name or f"Discord User {user_id}"}
            if field == "email":
                fields["email"] = value
            created = await self.contacts.create_contact(fields)
            contact_id = str(created["id"])
            LOGGER.info(
                "contact created",
                extra={"event": "contact_created", "context": {"field": field, "contact_id": contact_id}},
            )
            return contact_id
        except (UpstreamError, KeyError) as exc:
            LOGGER.warning(
                "contact resolution failed, continuing with external id",
                extra={
                    "event": "contact_resolution_failed",
                    "context": {"field": field, "user_id": user_id, "error": str(exc)},
                },
            )
            return None

    async def lookup(self, user_id: str, email: str | None = None) -> str | None:
        """Search-only variant; never creates a contact."""
        field, value = _lookup_key(user_id, email)
        matches = await self.contacts.search_contacts(field, value)
        if not matches:
            return None
        return str(matches[0]["id"])


def _lookup_key(user_id: str, email: str | None) -> tuple[str, str]:
    if email and email.strip():
        return "email", email.strip()
    return "external_id", user_id
