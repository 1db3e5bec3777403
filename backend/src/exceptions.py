from typing import Any


class DomainError(Exception):
    """Base exception class for all domain-specific exceptions."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)


class ResourceNotFoundError(DomainError):
    """Exception raised when a requested resource is not found."""

    def __init__(self, resource_type: str, resource_id: Any) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type} with ID {resource_id} not found"
        super().__init__(message)


class ValidationError(DomainError):
    """Exception raised when validation fails."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConflictError(DomainError):
    """Exception raised when a write would violate a terminal state.

    `existing` carries the stored result so callers can render it without a second fetch.
    """

    def __init__(self, message: str, existing: dict[str, Any] | None = None) -> None:
        self.existing = existing or {}
        super().__init__(message)


class TransientStoreError(DomainError):
    """Exception raised when the persistence layer fails underneath a mutation."""

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"Failed to {operation}")
