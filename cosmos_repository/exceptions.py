"""
Custom exceptions for the repository.

Store collaborators translate their transport errors into these
exceptions so the repository handles every backend the same way.
"""


class RepositoryError(Exception):
    """Base exception for all repository errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ItemNotFoundError(RepositoryError):
    """Raised when an id/partition key pair does not exist in a container."""

    def __init__(self, item_id: str, partition_key: str | None = None, container: str | None = None):
        details = {"item_id": item_id}
        if partition_key is not None:
            details["partition_key"] = partition_key
        if container:
            details["container"] = container
        super().__init__(f"Item not found: {item_id}", details)
        self.item_id = item_id
        self.partition_key = partition_key
        self.container = container


class ItemConflictError(RepositoryError):
    """Raised when a create collides with an existing id/partition key pair."""

    def __init__(self, item_id: str, partition_key: str | None = None, container: str | None = None):
        details = {"item_id": item_id}
        if partition_key is not None:
            details["partition_key"] = partition_key
        if container:
            details["container"] = container
        super().__init__(f"Item already exists: {item_id}", details)
        self.item_id = item_id
        self.partition_key = partition_key
        self.container = container


class StoreError(RepositoryError):
    """Raised when the store fails for any other reason.

    Covers timeouts, throttling, malformed queries and other transport
    failures reported by the store. Connection and authentication failures
    are subclasses, so ``except StoreError`` sees every store-side failure.
    """

    def __init__(
        self,
        operation: str,
        container: str | None = None,
        status_code: int | None = None,
        cause: Exception | None = None,
    ):
        details: dict = {"operation": operation}
        if container:
            details["container"] = container
        if status_code is not None:
            details["status_code"] = status_code
        if cause:
            details["cause"] = str(cause)
        message = f"Store error during {operation}"
        if container:
            message += f" on {container}"
        if status_code is not None:
            message += f" (status {status_code})"
        super().__init__(message, details)
        self.operation = operation
        self.container = container
        self.status_code = status_code
        self.cause = cause


class StoreConnectionError(StoreError):
    """Raised when connection to the store fails.

    Note: Named StoreConnectionError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None, operation: str = "connect"):
        details = {"operation": operation, "endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        RepositoryError.__init__(self, f"Connection failed to {endpoint}", details)
        self.operation = operation
        self.container = None
        self.status_code = None
        self.cause = cause
        self.endpoint = endpoint


class AuthenticationError(StoreError):
    """Raised when authentication to the store fails."""

    def __init__(
        self,
        endpoint: str,
        reason: str | None = None,
        status_code: int | None = None,
        operation: str = "authenticate",
    ):
        details: dict = {"operation": operation, "endpoint": endpoint}
        if reason:
            details["reason"] = reason
        if status_code is not None:
            details["status_code"] = status_code
        RepositoryError.__init__(self, f"Authentication failed for {endpoint}", details)
        self.operation = operation
        self.container = None
        self.status_code = status_code
        self.cause = None
        self.endpoint = endpoint
        self.reason = reason


class ValidationError(RepositoryError):
    """Raised when caller input fails validation."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value
