"""Freebox client error taxonomy.

Every failure raised by the client is a ``FreeboxError``. Transport problems,
unexpected payloads, bad HTTP statuses and application level errors each get
their own branch so callers can match on the class they care about.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional, Type

if TYPE_CHECKING:
    from .envelope import Envelope


class FreeboxError(Exception):
    """Base exception for all Freebox client errors."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {"error": str(self), "type": type(self).__name__}


class ConfigurationError(FreeboxError):
    """Raised when the client is missing required configuration."""

    pass


class AppIDNotSetError(ConfigurationError):
    """Raised when an authenticated call is attempted without an app id."""

    def __init__(self) -> None:
        super().__init__("app id is not set")


class PrivateTokenNotSetError(ConfigurationError):
    """Raised when an authenticated call is attempted without a private token."""

    def __init__(self) -> None:
        super().__init__("private token is not set")


class NetworkError(FreeboxError):
    """Raised when the transport fails to complete a request."""

    pass


class RequestTimeoutError(NetworkError):
    """Raised when a request exceeds its deadline."""

    pass


class DecodingError(FreeboxError):
    """Raised when a response does not match the expected shape."""

    pass


class StatusError(FreeboxError):
    """Non-2xx response whose body is not a structured envelope."""

    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"failed with status '{status}': server returned '{body}'")
        self.status = status
        self.body = body

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        result = super().to_dict()
        result["status"] = self.status
        return result


class BusinessError(FreeboxError):
    """Structurally valid envelope reporting ``success: false``."""

    def __init__(
        self,
        error_code: Optional[str],
        message: Optional[str],
        *,
        uid: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(f"failed with error code '{error_code}': {message}")
        self.error_code = error_code
        self.message = message
        self.uid = uid
        self.status = status

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        result = super().to_dict()
        result["error_code"] = self.error_code
        if self.status:
            result["status"] = self.status
        return result


class NotFoundError(BusinessError):
    """The requested resource does not exist."""

    pass


class PathNotFoundError(NotFoundError):
    """The requested filesystem path does not exist."""

    pass


class TaskNotFoundError(NotFoundError):
    """The requested task does not exist."""

    pass


class ConflictError(BusinessError):
    """The operation collides with an existing resource."""

    pass


class DestinationConflictError(ConflictError):
    """The destination of a filesystem operation already exists."""

    pass


class AuthRequiredError(BusinessError):
    """The session is missing, expired or was rejected."""

    pass


class AuthorizationError(FreeboxError):
    """Raised when the application authorization flow does not end in a grant."""

    def __init__(self, status: str) -> None:
        super().__init__(f"application authorization ended with status '{status}'")
        self.status = status


# Known error codes promoted to dedicated classes. Anything else becomes a
# plain BusinessError carrying the code verbatim.
ERROR_CODE_CLASSES: Dict[str, Type[BusinessError]] = {
    "noent": NotFoundError,
    "not_found": NotFoundError,
    "path_not_found": PathNotFoundError,
    "task_not_found": TaskNotFoundError,
    "exists": ConflictError,
    "destination_conflict": DestinationConflictError,
    "auth_required": AuthRequiredError,
    "invalid_token": AuthRequiredError,
    "invalid_session": AuthRequiredError,
}


def classify_envelope(envelope: Envelope, status: Optional[int] = None) -> BusinessError:
    """Build the most specific business error for a failed envelope.

    Args:
        envelope: Envelope with ``success`` set to False.
        status: HTTP status the envelope was received with.

    Returns:
        A BusinessError (or subclass) describing the failure.
    """
    error_class = ERROR_CODE_CLASSES.get(envelope.error_code or "", BusinessError)
    return error_class(
        envelope.error_code,
        envelope.message,
        uid=envelope.uid,
        status=status,
    )
