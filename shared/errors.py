"""
Shared error handling for the Premium service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class PremiumError(Exception):
    """Base exception for the Premium service."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class StorageUnavailableError(PremiumError):
    """Storage backend I/O or connection failure."""

    def __init__(self, operation: str, message: str = "Storage unavailable", details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        details.setdefault("operation", operation)
        super().__init__("STORAGE_UNAVAILABLE", f"{operation}: {message}", details)
        self.operation = operation


class EntityNotPremiumError(PremiumError):
    """Operation requires a premium entity."""

    def __init__(self, entity_id: str, message: str = "Entity is not premium"):
        super().__init__("ENTITY_NOT_PREMIUM", message, {"entity_id": entity_id})
        self.entity_id = entity_id


class ValidationError(PremiumError):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class CodeGenerationError(PremiumError):
    """No unused redemption code could be generated."""

    def __init__(self, attempts: int):
        super().__init__(
            "CODE_GENERATION_FAILED",
            f"Could not generate an unused code after {attempts} attempts",
            {"attempts": attempts}
        )
