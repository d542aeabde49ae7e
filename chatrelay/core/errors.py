"""Error codes and the relay exception hierarchy."""
from enum import Enum
from typing import Optional

GENERIC_FAILURE_MESSAGE = "Failed to generate response"
INVALID_KEY_MESSAGE = "Invalid API key. Please check your API key in Settings."
RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please wait a moment and try again."


class ErrorCode(str, Enum):
    """Normalized error codes for chatrelay.

    Every terminal error event maps to exactly one of these values.
    Used in logs and metrics.
    """
    CREDENTIAL_MISSING = "credential_missing"
    UPSTREAM_ERROR = "upstream_error"
    DECODE_FAILURE = "decode_failure"
    NETWORK_FAILURE = "network_failure"


class UpstreamStatus(str, Enum):
    """Normalized upstream status codes for metrics.

    Upstream status codes are normalized to reduce Prometheus cardinality.
    Actual status codes are preserved in logs.
    """
    # Client errors (4xx)
    BAD_REQUEST = "400"
    UNAUTHORIZED = "401"
    FORBIDDEN = "403"
    NOT_FOUND = "404"
    TOO_MANY_REQUESTS = "429"
    CLIENT_ERROR_OTHER = "4xx"

    # Server errors (5xx)
    INTERNAL_SERVER_ERROR = "500"
    BAD_GATEWAY = "502"
    SERVICE_UNAVAILABLE = "503"
    GATEWAY_TIMEOUT = "504"
    SERVER_ERROR_OTHER = "5xx"

    # No HTTP status available
    NONE = "none"

    @classmethod
    def normalize(cls, status_code: Optional[int]) -> str:
        """Normalize HTTP status code to enum value.

        Args:
            status_code: HTTP status code or None

        Returns:
            Normalized status string for metrics
        """
        if status_code is None:
            return cls.NONE.value

        exact = {
            400: cls.BAD_REQUEST,
            401: cls.UNAUTHORIZED,
            403: cls.FORBIDDEN,
            404: cls.NOT_FOUND,
            429: cls.TOO_MANY_REQUESTS,
            500: cls.INTERNAL_SERVER_ERROR,
            502: cls.BAD_GATEWAY,
            503: cls.SERVICE_UNAVAILABLE,
            504: cls.GATEWAY_TIMEOUT,
        }
        if status_code in exact:
            return exact[status_code].value
        if 400 <= status_code < 500:
            return cls.CLIENT_ERROR_OTHER.value
        if 500 <= status_code < 600:
            return cls.SERVER_ERROR_OTHER.value
        return cls.NONE.value


class RelayError(Exception):
    """Base class for every failure that terminates a relayed stream.

    ``str(exc)`` carries the server-side detail; ``client_message`` is the
    only text that is ever sent to the browser.
    """
    code: ErrorCode = ErrorCode.UPSTREAM_ERROR

    def __init__(self, detail: str = "", status_code: Optional[int] = None):
        super().__init__(detail or self.code.value)
        self.detail = detail
        self.status_code = status_code

    @property
    def client_message(self) -> str:
        return GENERIC_FAILURE_MESSAGE


class CredentialMissingError(RelayError):
    """No usable credential exists for the resolved provider."""
    code = ErrorCode.CREDENTIAL_MISSING

    def __init__(self, provider: str, detail: str = ""):
        super().__init__(detail or f"no credential for provider '{provider}'")
        self.provider = provider

    @property
    def client_message(self) -> str:
        return f"No API key found for {self.provider}. Please add one in Settings."


class UpstreamError(RelayError):
    """Provider rejected the request or its initial response was unusable."""
    code = ErrorCode.UPSTREAM_ERROR

    @property
    def client_message(self) -> str:
        if self.status_code in (401, 403):
            return INVALID_KEY_MESSAGE
        if self.status_code == 429:
            return RATE_LIMIT_MESSAGE
        return GENERIC_FAILURE_MESSAGE


class DecodeFailureError(RelayError):
    """A streaming unit could not be parsed into a StreamChunk."""
    code = ErrorCode.DECODE_FAILURE


class NetworkFailureError(RelayError):
    """Transport-level failure or truncation after streaming began."""
    code = ErrorCode.NETWORK_FAILURE


class DecryptionError(Exception):
    """Raised by a keystore when a stored blob cannot be decrypted."""
    pass
