# Overview: Domain error taxonomy shared by services and routes.

"""
Every failure the engine reports to a caller is a DomainError subclass.

Services raise these from inside the unit of work; the enclosing
operation rolls back, so a caller never sees a partial commit next to an
error. Routes translate them to JSON with the class's status_code.

    ValidationError          400  malformed input, missing field, bad state
    NotFoundError            404  missing row or row owned by another tenant
    InsufficientStockError   409  a decrement would go negative
    ConflictError            409  duplicate SKU, double void, open shift
    IntegrityViolationError  422  server total != declared total
"""

from __future__ import annotations


class DomainError(ValueError):
    """Base class for business-rule failures."""
    status_code = 400
    code = "DOMAIN_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": str(self), "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(DomainError):
    """400-level input problem."""
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(DomainError):
    """Referenced row does not exist or belongs to another tenant."""
    status_code = 404
    code = "NOT_FOUND"


class InsufficientStockError(DomainError):
    """A stock decrement would take stock_qty below zero."""
    status_code = 409
    code = "INSUFFICIENT_STOCK"


class ConflictError(DomainError):
    """409-level business rule conflict (e.g., duplicate SKU)."""
    status_code = 409
    code = "CONFLICT"


class IntegrityViolationError(DomainError):
    """Server-computed amounts disagree with what the client declared."""
    status_code = 422
    code = "INTEGRITY_VIOLATION"
