"""Relay error taxonomy.

Only verification failures change the HTTP status returned to a provider;
everything else is absorbed by the endpoint and logged.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for relay errors."""


class AuthenticationError(RelayError):
    """Inbound callback failed signature / secret / channel verification."""


class NotFoundError(RelayError):
    """Guild, integration or webhook registration does not exist."""


class StateInvariantViolation(RelayError):
    """Provider returned data the relay's model cannot represent."""


class CredentialsError(RelayError):
    """Submitted credential batch is incomplete or malformed."""


class ProviderError(RelayError):
    """Outbound call to Trello / GitHub / Google / Discord failed."""

    def __init__(self, provider: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class ProviderAuthError(ProviderError):
    """Provider rejected our credentials (401/403)."""


class ProviderNotFoundError(ProviderError, NotFoundError):
    """Provider resource is gone or never existed (404)."""


class ProviderGoneError(ProviderError):
    """Provider answered 410 Gone (Google: sync token invalidated)."""


class TransientProviderError(ProviderError):
    """Network failure, timeout, rate limit or 5xx after retries."""
