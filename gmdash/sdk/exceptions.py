"""Error taxonomy for the gmdash SDK.

Every error carries the operation and target it was raised for, so callers
can log it and render a structured payload via ``to_dict()``.
"""

from typing import Any, Dict, Optional


class GmdashError(Exception):
    """Base class for all gmdash exceptions."""

    requires_reauth = False

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        target: Optional[str] = None,
        status: Optional[int] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.target = target
        self.status = status

    def to_dict(self) -> Dict[str, Any]:
        """Structured error payload for the presentation layer."""
        return {
            "error": {
                "type": type(self).__name__,
                "message": str(self),
                "operation": self.operation,
                "target": self.target,
                "status": self.status,
                "reauthenticate": self.requires_reauth,
            }
        }


class ValidationError(GmdashError):
    """Base class for invalid caller input."""
    pass


class ClientConfigError(ValidationError):
    """Raised when the OAuth client configuration is missing or malformed."""
    pass


class AuthError(GmdashError):
    """Base class for failures that require the user to authorize again."""

    requires_reauth = True


class NotAuthenticatedError(AuthError):
    """Raised when a session holds no credential."""

    def __init__(self, session_id: str):
        super().__init__(
            f"Session '{session_id}' is not authenticated",
            operation="load session",
            target=session_id,
        )


class AuthExchangeError(AuthError):
    """Raised when an authorization code cannot be traded for tokens."""
    pass


class RefreshError(AuthError):
    """Raised when the refresh token is missing, revoked or rejected.

    Fatal to the session: it must be invalidated, not retried.
    """
    pass


class TransformError(GmdashError):
    """Raised when message headers or body cannot be decoded."""
    pass


class SendError(GmdashError):
    """Raised when an outbound message cannot be composed or sent."""
    pass


class ProviderError(GmdashError):
    """Raised when Gmail rejects a request or cannot be reached."""
    pass


class MessageNotFoundError(ProviderError):
    """Raised when a message id does not exist."""
    pass


class DuplicateLabelError(ProviderError):
    """Raised when a label with the same name already exists."""
    pass
