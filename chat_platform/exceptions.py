from enum import Enum

from fastapi import HTTPException


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    PROVIDER_NOT_FOUND = "provider_not_found"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    STREAMING_UNSUPPORTED = "streaming_unsupported"
    UPSTREAM = "upstream"
    QUOTA_EXCEEDED = "quota_exceeded"
    INTERNAL = "internal"


HTTP_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.PROVIDER_NOT_FOUND: 400,
    ErrorKind.PROVIDER_UNAVAILABLE: 503,
    ErrorKind.STREAMING_UNSUPPORTED: 501,
    ErrorKind.UPSTREAM: 502,
    ErrorKind.QUOTA_EXCEEDED: 429,
    ErrorKind.INTERNAL: 500,
}


class ChatError(Exception):
    kind = ErrorKind.INTERNAL
    default_message = "internal error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ChatError):
    kind = ErrorKind.VALIDATION
    default_message = "invalid request"


class SessionNotFoundError(ChatError):
    kind = ErrorKind.NOT_FOUND
    default_message = "session not found"


class ProviderNotFoundError(ChatError):
    kind = ErrorKind.PROVIDER_NOT_FOUND
    default_message = "provider not found"


class ProviderUnavailableError(ChatError):
    kind = ErrorKind.PROVIDER_UNAVAILABLE
    default_message = "provider is not configured"


class StreamingNotSupportedError(ChatError):
    kind = ErrorKind.STREAMING_UNSUPPORTED
    default_message = "streaming not supported"


class UpstreamError(ChatError):
    kind = ErrorKind.UPSTREAM
    default_message = "upstream provider failed"


class QuotaExceededError(UpstreamError):
    kind = ErrorKind.QUOTA_EXCEEDED
    default_message = "upstream quota exceeded"


class StorageError(ChatError):
    kind = ErrorKind.INTERNAL
    default_message = "storage failure"


class AuthException(HTTPException):
    def __init__(self, detail: str = "unauthorized"):
        super().__init__(status_code=401, detail=detail)
