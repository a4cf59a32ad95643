"""Intercom REST API integration."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from bridge.errors import UpstreamError

LOGGER = logging.getLogger(__name__)


class IntercomClient:
    """Async client for the Intercom contacts, tickets and conversations APIs."""

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.intercom.io",
        api_version: str = "2.11",
        timeout: float | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Intercom-Version": api_version,
        }

    async def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(method, url, json=json, headers=self.headers)
        except httpx.HTTPError as exc:
            LOGGER.error(
                "intercom transport error",
                extra={"event": "intercom_transport_error", "context": {"path": path, "error": str(exc)}},
            )
            raise UpstreamError("intercom", f"Intercom request failed: {exc}") from exc

        if response.status_code >= 400:
            try:
                details = response.json()
            except ValueError:
                details = None
            LOGGER.warning(
                "intercom error response",
                extra={
                    "event": "intercom_error",
                    "context": {"path": path, "method": method, "status_code": response.status_code},
                },
            )
            raise UpstreamError(
                "intercom",
                f"Intercom returned {response.status_code} for {method} {path}",
                status_code=response.status_code,
                details=details,
            )
        if response.status_code == 204:
            return {}
        return response.json()

    async def search_contacts(self, field: str, value: str) -> list[dict[str, Any]]:
        """Return contacts whose field equals value; an empty list means no match."""
        body = {"query": {"field": field, "operator": "=", "value": value}}
        payload = await self._request("POST", "/contacts/search", json=body)
        return list(payload.get("data") or [])

    async def create_contact(self, fields: dict[str, Any]) -> dict[str, Any]:
        """Create a user contact."""
        return await self._request("POST", "/contacts", json={"role": "user", **fields})

    async def create_ticket(
        self,
        ticket_type_id: str,
        contacts: list[dict[str, str]],
        attributes: dict[str, Any],
    ) -> dict[str, Any]:
        """Create a ticket and return the raw ticket object."""
        body = {
            "ticket_type_id": ticket_type_id,
            "contacts": contacts,
            "ticket_attributes": attributes,
        }
        return await self._request("POST", "/tickets", json=body)

    async def get_ticket(self, ticket_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/tickets/{ticket_id}")

    async def search_tickets(self, query: dict[str, Any]) -> list[dict[str, Any]]:
        """Run a ticket search query and return the matching tickets."""
        payload = await self._request("POST", "/tickets/search", json={"query": query})
        return list(payload.get("tickets") or payload.get("data") or [])

    async def update_ticket(self, ticket_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PUT", f"/tickets/{ticket_id}", json=fields)

    async def reply_to_ticket(self, ticket_id: str, body: str, contact_id: str | None) -> dict[str, Any]:
        """Post a user-authored comment on a ticket."""
        return await self._request("POST", f"/tickets/{ticket_id}/reply", json=_user_reply(body, contact_id))

    async def get_conversation(self, conversation_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/conversations/{conversation_id}")

    async def reply_to_conversation(self, conversation_id: str, body: str, contact_id: str | None) -> dict[str, Any]:
        """Post a user-authored comment on a conversation."""
        return await self._request(
            "POST",
            f"/conversations/{conversation_id}/reply",
            json=_user_reply(body, contact_id),
        )


def _user_reply(body: str, contact_id: str | None) -> dict[str, Any]:
    payload: dict[str, Any] = {"message_type": "comment", "type": "user", "body": body}
    if contact_id:
        payload["intercom_user_id"] = contact_id
    return payload
