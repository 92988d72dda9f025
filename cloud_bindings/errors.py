"""Exception hierarchy shared by the Firestore and Analytics clients."""

from typing import Any, Dict, Optional


class CloudBindingsError(Exception):
    """Base exception for all client errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidPathError(CloudBindingsError, ValueError):
    """Document or collection path has the wrong shape."""


class UnsupportedTypeError(CloudBindingsError, TypeError):
    """Value or annotation has no Firestore representation."""


class DocumentMappingError(CloudBindingsError):
    """A stored field could not be converted to the target type."""


class FirestoreRequestError(CloudBindingsError):
    """Non-success response from the Firestore REST API."""

    def __init__(self, message: str, status_code: int = 0, reason: str = '', body: str = ''):
        super().__init__(message, {'status_code': status_code, 'reason': reason})
        self.status_code = status_code
        self.reason = reason
        self.body = body


class DocumentNotFoundError(FirestoreRequestError):
    pass


class FieldNotFoundError(CloudBindingsError, KeyError):
    def __str__(self):
        return self.message


class AnalyticsError(CloudBindingsError):
    """Measurement Protocol request failed."""


class InvalidEventError(AnalyticsError, ValueError):
    pass


class AuthenticationError(CloudBindingsError):
    """No access token could be obtained for a request."""
