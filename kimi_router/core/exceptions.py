"""Core exceptions for the bridge."""

from typing import Mapping, Optional


class ProxyError(Exception):
    """Base exception for bridge errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ProxyError):
    """Raised when there's an issue with the configuration."""
    pass


class InvalidRequestError(ProxyError):
    """Raised when an incoming request is malformed."""

    def __init__(self, message: str, code: str = "invalid_request") -> None:
        super().__init__(message)
        self.code = code


class TranslationError(ProxyError):
    """Raised when backend data cannot be translated for the caller."""
    pass


class BackendError(ProxyError):
    """A non-success reply from the backend, forwarded to the caller as-is."""

    def __init__(
        self,
        status_code: int,
        body: bytes,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__(f"backend returned status {status_code}")
        self.status_code = status_code
        self.body = body
        self.headers = dict(headers or {})
