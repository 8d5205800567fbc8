"""
Error hierarchy for the catalog API.

Every error maps to one HTTP status and renders as {"message": ...}, with an
"errors" list for field-level validation detail. The global handlers in
main.py turn these into responses.
"""

from typing import Any, Dict, List, Optional


class CatalogError(Exception):
    """Base exception for all catalog errors."""

    status_code = 500
    code = "INTERNAL"
    default_message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, Any]]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)

    def to_response(self) -> dict:
        body: Dict[str, Any] = {"message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationFailed(CatalogError):
    """Malformed or missing fields."""
    status_code = 400
    code = "VALIDATION_FAILED"
    default_message = "Validation failed"


class DuplicateKey(CatalogError):
    """A uniqueness constraint was violated."""
    status_code = 400
    code = "DUPLICATE_KEY"
    default_message = "Duplicate key"


class NotFound(CatalogError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not Found"


class Unauthenticated(CatalogError):
    status_code = 401
    code = "UNAUTHENTICATED"
    default_message = "Authentication required"


class AccessDenied(CatalogError):
    status_code = 403
    code = "ACCESS_DENIED"
    default_message = "Access denied"


class Internal(CatalogError):
    status_code = 500
    code = "INTERNAL"
    default_message = "Internal Server Error"
