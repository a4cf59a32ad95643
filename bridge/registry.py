"""Channel binding registry: Discord channel id -> Intercom ticket binding."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Protocol

from bridge.schemas import ChannelBinding

LOGGER = logging.getLogger(__name__)


class BindingStore(Protocol):
    """Storage seam for channel bindings."""

    def put(self, channel_id: str, binding: ChannelBinding) -> None: ...

    def get(self, channel_id: str) -> ChannelBinding | None: ...

    def remove(self, channel_id: str) -> bool: ...

    def all(self) -> dict[str, ChannelBinding]: ...

    def __len__(self) -> int: ...


class InMemoryBindingStore:
    """Process-local bindings; everything is lost on restart.

    Each call is atomic. Sequences of calls are not, so concurrent
    register/unregister flows for one channel resolve as last write wins.
    """

    def __init__(self) -> None:
        self._bindings: dict[str, ChannelBinding] = {}
        self._lock = Lock()

    def put(self, channel_id: str, binding: ChannelBinding) -> None:
        """Store or replace the binding for a channel."""
        with self._lock:
            replaced = channel_id in self._bindings
            self._bindings[channel_id] = binding
            total = len(self._bindings)
        LOGGER.info(
            "channel registered",
            extra={
                "event": "channel_registered",
                "context": {
                    "channel_id": channel_id,
                    "ticket_id": binding.ticket_id,
                    "replaced": replaced,
                    "tracked_channels": total,
                },
            },
        )

    def get(self, channel_id: str) -> ChannelBinding | None:
        with self._lock:
            return self._bindings.get(channel_id)

    def remove(self, channel_id: str) -> bool:
        """Drop a binding; returns whether the channel was tracked."""
        with self._lock:
            removed = self._bindings.pop(channel_id, None)
            total = len(self._bindings)
        if removed is not None:
            LOGGER.info(
                "channel unregistered",
                extra={
                    "event": "channel_unregistered",
                    "context": {"channel_id": channel_id, "tracked_channels": total},
                },
            )
        return removed is not None

    def all(self) -> dict[str, ChannelBinding]:
        with self._lock:
            return dict(self._bindings)

    def __len__(self) -> int:
        with self._lock:
            return len(self._bindings)
