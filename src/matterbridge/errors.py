"""Bridge domain exceptions."""

from __future__ import annotations


class BridgeError(Exception):
    """Base for bridge domain errors."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, object] | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.original_error = original_error


class BridgeConfigurationError(BridgeError):
    """Config validation or load failure."""


class AuthenticationError(BridgeError):
    """Remote rejected the credentials. Fatal; never retried."""


class TeamNotFoundError(BridgeError):
    """Configured team is not one the bridge user belongs to. Fatal."""


class TransientConnectionError(BridgeError):
    """Connection refused, DNS failure, dropped socket. Retried with backoff."""


class DeliveryError(BridgeError):
    """A single send failed; the session stays up."""


class ChannelNotFoundError(BridgeError):
    """Channel name does not resolve to an id."""


class MediaLookupError(BridgeError):
    """Random media lookup failed."""


class UnsupportedOperationError(BridgeError):
    """Operation not available for this session variant."""
