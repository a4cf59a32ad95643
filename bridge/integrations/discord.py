"""Discord REST API integration."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from bridge.errors import UpstreamError

LOGGER = logging.getLogger(__name__)

# Guild text, DM, group DM, announcement, voice (text-in-voice) and thread channel types.
TEXT_CHANNEL_TYPES = frozenset({0, 1, 2, 3, 5, 10, 11, 12})


class DiscordClient:
    """Bot-token client for channel lookups, messages and reactions."""

    def __init__(self, token: str, base_url: str = "https://discord.com/api/v10", timeout: float | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {"Authorization": f"Bot {token}"}

    async def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(method, f"{self.base_url}{path}", json=json, headers=self.headers)
        except httpx.HTTPError as exc:
            raise UpstreamError("discord", f"Discord request failed: {exc}") from exc

        if response.status_code == 429:
            LOGGER.warning("discord throttled", extra={"event": "discord_throttled", "context": {"path": path}})
        if response.status_code >= 400:
            try:
                details = response.json()
            except ValueError:
                details = None
            raise UpstreamError(
                "discord",
                f"Discord returned {response.status_code} for {method} {path}",
                status_code=response.status_code,
                details=details,
            )
        if response.status_code == 204:
            return {}
        return response.json()

    async def fetch_channel(self, channel_id: str) -> dict[str, Any] | None:
        """Return the channel object, or None when Discord does not know it."""
        try:
            return await self._request("GET", f"/channels/{channel_id}")
        except UpstreamError as exc:
            if exc.not_found:
                return None
            raise

    async def send_message(self, channel_id: str, content: str) -> dict[str, Any]:
        """Send a plain message; mentions are not resolved."""
        body = {"content": content, "allowed_mentions": {"parse": []}}
        return await self._request("POST", f"/channels/{channel_id}/messages", json=body)

    async def add_reaction(self, channel_id: str, message_id: str, emoji: str) -> None:
        await self._request(
            "PUT",
            f"/channels/{channel_id}/messages/{message_id}/reactions/{quote(emoji)}/@me",
        )


def is_text_channel(channel: dict[str, Any]) -> bool:
    return channel.get("type") in TEXT_CHANNEL_TYPES
