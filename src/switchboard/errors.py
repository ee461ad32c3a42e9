"""Error types raised by providers and the fallback executor."""

from __future__ import annotations


class ProviderError(Exception):
    """Base class for every error switchboard raises or delivers."""


class ProviderNotReadyError(ProviderError):
    """The provider is missing a credential, a base URL, or is disabled."""

    def __init__(self, message: str = "Provider is not configured"):
        super().__init__(message)


class TransportError(ProviderError):
    """Non-2xx response or a failure to reach the endpoint.

    ``status_code`` is None when no response was received.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str = "",
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @classmethod
    def from_status(cls, status_code: int, body: str) -> TransportError:
        return cls(
            f"API Error: {status_code} - {body}",
            status_code=status_code,
            body=body,
        )


class StreamError(ProviderError):
    """An error event reported by the vendor inside a stream."""


class NoProvidersError(ProviderError):
    def __init__(self, message: str = "No available providers configured"):
        super().__init__(message)


class RequestCancelledError(ProviderError):
    def __init__(self, message: str = "Request cancelled"):
        super().__init__(message)
