"""
Custom exceptions for the session coordinator.

Identity and session errors are surfaced to callers. Profile sync and
telemetry errors are absorbed where they occur and only logged.
"""


class CoordinatorError(Exception):
    """Base exception for all session coordinator errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ProviderError(CoordinatorError):
    """Raised by identity providers with a provider-specific error code."""

    def __init__(self, code: str, message: str | None = None):
        super().__init__(message or code, {"code": code})
        self.code = code


class CredentialError(CoordinatorError):
    """Bad or duplicate credentials, weak secret, disabled account, network failure."""

    def __init__(self, message: str, code: str | None = None, operation: str | None = None):
        details = {}
        if code:
            details["code"] = code
        if operation:
            details["operation"] = operation
        super().__init__(message, details)
        self.code = code
        self.operation = operation

    @classmethod
    def from_provider(cls, error: ProviderError, operation: str) -> "CredentialError":
        """Wrap a provider error, keeping the provider-supplied message."""
        return cls(error.message, code=error.code, operation=operation)


class SessionError(CoordinatorError):
    """Raised when a session transition (logout, persistence change) fails."""

    def __init__(self, message: str, code: str | None = None):
        details = {"code": code} if code else {}
        super().__init__(message, details)
        self.code = code


class NotAuthenticatedError(CoordinatorError):
    """Raised when a principal-scoped operation is called with no active principal."""

    def __init__(self, operation: str):
        super().__init__(f"No user logged in: {operation} requires an active principal", {"operation": operation})
        self.operation = operation


class ProfileSyncError(CoordinatorError):
    """Profile read or write failed. Logged only, never raised to callers."""

    def __init__(self, principal_id: str, operation: str, cause: Exception | None = None):
        details = {"principal_id": principal_id, "operation": operation}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Profile {operation} failed for {principal_id}", details)
        self.principal_id = principal_id
        self.operation = operation
        self.cause = cause


class TelemetryError(CoordinatorError):
    """Metrics sink failure. Logged only, fully swallowed."""

    def __init__(self, event_name: str, cause: Exception | None = None):
        details = {"event_name": event_name}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Telemetry sink failed for event {event_name}", details)
        self.event_name = event_name
        self.cause = cause


class ProfileStoreError(CoordinatorError):
    """Raised when a profile store operation fails."""

    def __init__(
        self,
        operation: str,
        key: str | None = None,
        cause: Exception | None = None,
        message: str | None = None,
    ):
        details = {"operation": operation}
        if key:
            details["key"] = key
        if cause:
            details["cause"] = str(cause)
        if message is None:
            message = f"Profile store error during {operation}"
            if key:
                message += f": {key}"
        super().__init__(message, details)
        self.operation = operation
        self.key = key
        self.cause = cause


class ProfileNotFoundError(ProfileStoreError):
    """Raised when updating a profile document that does not exist."""

    def __init__(self, key: str, operation: str = "update"):
        super().__init__(operation, key, message=f"Profile not found: {key}")


class ProfileExistsError(ProfileStoreError):
    """Raised when creating a profile document that already exists."""

    def __init__(self, key: str):
        super().__init__("create", key, message=f"Profile already exists: {key}")


class StorageConnectionError(CoordinatorError):
    """Raised when connection to remote storage fails.

    Note: Named StorageConnectionError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause


class ConfigurationError(CoordinatorError):
    """Raised when configuration values are missing or invalid."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid configuration for {field}: {reason}", {"field": field, "reason": reason})
        self.field = field
        self.reason = reason
