"""Error types raised by the bridge and its platform clients."""

from __future__ import annotations

from typing import Any


class BridgeError(Exception):
    """Base class for bridge failures surfaced to HTTP callers."""

    status_code = 500

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class RequestValidationFailure(BridgeError):
    """Required intake fields or credentials are missing."""

    status_code = 400


class UpstreamError(BridgeError):
    """A Discord or Intercom call failed or returned a non-2xx status."""

    def __init__(
        self,
        service: str,
        message: str,
        status_code: int | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message, details)
        self.service = service
        self.upstream_status = status_code
        # Upstream 4xx/5xx are echoed so callers can spot bad tokens or ticket types.
        self.status_code = status_code if status_code and status_code >= 400 else 502

    @property
    def not_found(self) -> bool:
        return self.upstream_status == 404

    def summary(self) -> list[str]:
        """Short upstream error messages, without the raw payload."""
        if isinstance(self.details, dict):
            errors = self.details.get("errors")
            if isinstance(errors, list):
                messages = [str(item.get("message")) for item in errors if isinstance(item, dict) and item.get("message")]
                if messages:
                    return messages
            if self.details.get("message"):
                return [str(self.details["message"])]
        return [self.message]
