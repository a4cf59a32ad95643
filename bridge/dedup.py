"""Redis-backed dedup cache for webhook deliveries and ticket creation."""

from __future__ import annotations

import hashlib
from typing import Any

from bridge.schemas import TicketIntake


class DedupCache:
    """Namespaced key/value cache with expiry."""

    def __init__(self, redis_client: Any, ttl_seconds: int = 86400) -> None:
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds

    def check(self, namespace: str, key: str) -> str | None:
        """Return the cached value when present."""
        raw = self.redis.get(f"dedup:{namespace}:{key}")
        if raw is None:
            return None
        return raw.decode() if isinstance(raw, (bytes, bytearray)) else str(raw)

    def set(self, namespace: str, key: str, value: str) -> None:
        self.redis.set(f"dedup:{namespace}:{key}", value, ex=self.ttl_seconds)

    def claim(self, namespace: str, key: str) -> bool:
        """Mark key as seen; False when another delivery already claimed it."""
        return bool(self.redis.set(f"dedup:{namespace}:{key}", "1", ex=self.ttl_seconds, nx=True))


def idempotency_key(intake: TicketIntake, header_value: str | None = None) -> str:
    """Caller-supplied key, else one derived from the Discord ticket identity."""
    if header_value and header_value.strip():
        return header_value.strip()
    raw = f"{intake.guild_id}:{intake.source_ticket_id}:{intake.channel_id or ''}"
    return hashlib.sha256(raw.encode()).hexdigest()
