# collage/domain/errors.py
"""
Exception classes raised by the collage pipeline and its provider adapters.
"""
from typing import Any, Dict, Optional

BODY_HEAD_LIMIT = 400


class CollageError(Exception):
    """Base exception carrying a stable machine-readable code"""
    code = "UNKNOWN"
    status = 500

    def __init__(self, message: str, code: Optional[str] = None, status: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        if code:
            self.code = code
        if status:
            self.status = status
        self.details = details or {}

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to the error body returned to clients"""
        return {
            "statusCode": self.status,
            "code": self.code,
            "message": self.message,
            "details": self.details or None,
        }


class InvalidUpload(CollageError):
    """Raised when an uploaded file has no usable bytes or cannot be decoded"""
    code = "INVALID_UPLOAD"
    status = 400


class NetworkError(CollageError):
    """Raised on transport-level failures talking to a provider"""
    code = "NETWORK_ERROR"
    status = 502


class Timeout(CollageError):
    """Raised when a provider call exceeds its time bound"""
    code = "TIMEOUT"
    status = 504


class UpstreamHttpError(CollageError):
    """Raised when a provider answers with a failing status or an unusable body"""
    code = "UPSTREAM_HTTP_ERROR"
    status = 502

    def __init__(self, message: str, http_status: Optional[int] = None, body: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if http_status is not None:
            details["status"] = http_status
        if body is not None:
            details["bodyHead"] = truncate(body)
        super().__init__(message, details=details)
        self.http_status = http_status


class ComposeFailed(CollageError):
    """Catch-all for unexpected failures while assembling the image"""
    code = "IMAGE_COMPOSE_ERROR"
    status = 500


class UnsupportedProvider(CollageError):
    """Raised when a requested provider id is not registered"""
    code = "UNSUPPORTED_PROVIDER"
    status = 400


class ConfigurationError(CollageError):
    """Raised when a provider is used without the settings it needs"""
    code = "CONFIGURATION_ERROR"
    status = 500


def truncate(text: str, limit: int = BODY_HEAD_LIMIT) -> str:
    text = str(text or "")
    return text if len(text) <= limit else text[:limit] + "..."
