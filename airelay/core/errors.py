"""Project error hierarchy."""

from __future__ import annotations

from typing import Any


class RelayError(Exception):
    """Base error."""

    code = "relay_error"

    def __init__(self, message: str, detail: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(RelayError):
    """Raised when the caller omits a required field or sends an unusable value."""

    code = "invalid_request"


class ConfigurationError(RelayError):
    """Raised when a provider is selected but not configured (missing key, unknown name)."""

    code = "provider_misconfigured"


class UpstreamError(RelayError):
    """Raised when the provider answers with a non-2xx status."""

    code = "upstream_http_error"

    def __init__(self, status_code: int, body: dict[str, Any] | str, detail: str = "") -> None:
        super().__init__(f"upstream returned HTTP {status_code}", detail)
        self.status_code = status_code
        self.body = body


class UpstreamUnavailableError(RelayError):
    """Raised when the provider cannot be reached (DNS, connect, timeout)."""

    code = "upstream_unreachable"


class EmptyResponseError(RelayError):
    """Raised when the provider answered 2xx without usable content, e.g. a safety block."""

    code = "empty_response"


class MalformedResponseError(RelayError):
    """Raised when the provider body matches none of the known envelope shapes."""

    code = "malformed_response"

    def __init__(self, message: str, raw: Any = None, detail: str = "") -> None:
        super().__init__(message, detail)
        self.raw = raw


class UnsupportedCapabilityError(RelayError):
    """Raised when the provider rejects a requested feature combination."""

    code = "unsupported_capability"

    def __init__(self, capability: str, upstream: UpstreamError) -> None:
        super().__init__(f"provider rejected capability: {capability}", upstream.detail)
        self.capability = capability
        self.upstream = upstream
