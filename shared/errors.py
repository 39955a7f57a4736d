"""
Shared error handling for the listing data layer.

Cache operations work on in-memory state and do not fail; these types cover
programming errors caught at construction or call time. Failures raised by an
injected fetch function are never wrapped and propagate unchanged.
"""

from typing import Dict, Any, Optional


class DataLayerException(Exception):
    """Base exception for data layer errors."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a loggable payload."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(DataLayerException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class RuleTableError(ValidationError):
    """Malformed invalidation rule table."""

    def __init__(self, message: str = "Invalid invalidation rule table", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.code = "RULE_TABLE_ERROR"
