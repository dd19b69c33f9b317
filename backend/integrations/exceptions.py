"""Typed exception hierarchy for provider errors.

Provides structured exceptions for differentiated error handling
(auth errors vs transient network errors vs data issues).
"""


class ProviderError(Exception):
    """Base exception for all provider-related errors.

    Carries the provider key so callers can identify which provider failed.
    """

    retriable = False

    def __init__(self, message: str, provider_name: str = ""):
        self.provider_name = provider_name
        super().__init__(message)


class ProviderAuthError(ProviderError):
    """Credentials missing, expired, or invalid (HTTP 401/403).

    Fatal for a sync pass: the connection needs user attention.
    """

    pass


class TransientProviderError(ProviderError):
    """A failure that may succeed on a later attempt (network, rate limit).

    Retried by the external job runner, never in-process. Once part of a
    response was delivered to the caller (``partial_delivery``) the error is
    no longer retriable: a half-consumed stream must not be replayed.
    """

    def __init__(
        self,
        message: str,
        provider_name: str = "",
        retriable: bool = True,
        partial_delivery: bool = False,
    ):
        self.partial_delivery = partial_delivery
        self.retriable = retriable and not partial_delivery
        super().__init__(message, provider_name)


class ProviderConnectionError(TransientProviderError):
    """Network failures such as timeouts or refused connections."""

    pass


class ProviderAPIError(ProviderError):
    """HTTP 4xx/5xx responses from the provider API."""

    def __init__(
        self,
        message: str,
        provider_name: str = "",
        status_code: int | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, provider_name)

    @property
    def retriable(self) -> bool:
        """429 (rate limit) and 5xx errors are generally retriable."""
        if self.status_code is None:
            return False
        return self.status_code == 429 or self.status_code >= 500


class ProviderDataError(ProviderError):
    """Malformed or unparseable record from the provider."""

    pass


def is_transient(exc: BaseException) -> bool:
    """True for provider errors the external job runner may retry."""
    return isinstance(exc, ProviderError) and bool(exc.retriable)
