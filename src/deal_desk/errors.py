"""
Custom exceptions and error handling for the Deal Desk engine.

Provides:
- Typed exception hierarchy for different failure modes
- Error context preservation for debugging
- Stable error codes for structured (non-raising) results
"""

from typing import Any


class DealDeskError(Exception):
    """Base exception for all deal desk errors."""

    code = 'DEAL_DESK_ERROR'

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for structured results."""
        return {
            'code': self.code,
            'message': self.message,
            'context': self.context,
        }


# =============================================================================
# Input Errors (returned as structured results by quote creation)
# =============================================================================


class ValidationError(DealDeskError):
    """Malformed or out-of-range input."""

    code = 'VALIDATION_ERROR'


class ResolutionError(DealDeskError):
    """A package or add-on reference could not be matched against the catalog."""

    code = 'RESOLUTION_ERROR'


# =============================================================================
# Workflow Errors (raised)
# =============================================================================


class WorkflowError(DealDeskError):
    """Base class for approval workflow errors."""

    code = 'WORKFLOW_ERROR'


class NotFoundError(WorkflowError):
    """Quote, workflow or step does not exist, or no step is currently pending."""

    code = 'NOT_FOUND'


class PersonaMismatchError(WorkflowError):
    """The acting role does not match the pending step's persona."""

    code = 'PERSONA_MISMATCH'


class AuthorizationError(WorkflowError):
    """The actor does not hold the role it is trying to act as."""

    code = 'NOT_AUTHORIZED'


class InvalidEditError(WorkflowError):
    """A step edit would alter or remove an already approved step."""

    code = 'INVALID_EDIT'


class QuoteStateError(WorkflowError):
    """Illegal quote-level status transition."""

    code = 'INVALID_STATE'


# =============================================================================
# External Service Errors
# =============================================================================


class ExternalServiceError(DealDeskError):
    """A collaborator (catalog, document generator, database) is unavailable."""

    code = 'EXTERNAL_SERVICE_ERROR'


class CatalogError(ExternalServiceError):
    """Catalog lookup failed for reasons other than a missing entry."""

    code = 'CATALOG_UNAVAILABLE'


class OpenAIError(ExternalServiceError):
    """Error from OpenAI API calls."""

    code = 'OPENAI_ERROR'


class OpenAIRateLimitError(OpenAIError):
    """Rate limit exceeded on OpenAI API."""

    pass


class OpenAIModelError(OpenAIError):
    """Model refused request or returned invalid response."""

    pass


class DatabaseError(ExternalServiceError):
    """Error from the relational store."""

    code = 'DATABASE_ERROR'


class DatabaseConnectionError(DatabaseError):
    """Failed to connect to the database."""

    pass


class DatabaseConstraintError(DatabaseError):
    """Constraint violation (e.g., duplicate step order)."""

    pass


# =============================================================================
# Error Handling Utilities
# =============================================================================


def wrap_openai_error(exc: Exception, context: dict[str, Any] | None = None) -> OpenAIError:
    """
    Wrap an OpenAI exception in our typed error hierarchy.

    Args:
        exc: The original exception
        context: Additional context for debugging

    Returns:
        Typed OpenAIError subclass
    """
    error_str = str(exc).lower()
    ctx = context or {}
    ctx['original_error'] = str(exc)
    ctx['error_type'] = type(exc).__name__

    if 'rate limit' in error_str or 'rate_limit' in error_str:
        return OpenAIRateLimitError(
            f"OpenAI rate limit exceeded: {exc}",
            context=ctx,
        )
    elif 'content policy' in error_str or 'refused' in error_str:
        return OpenAIModelError(
            f"OpenAI model refused request: {exc}",
            context=ctx,
        )
    else:
        return OpenAIError(
            f"OpenAI API error: {exc}",
            context=ctx,
        )


def wrap_database_error(exc: Exception, context: dict[str, Any] | None = None) -> DatabaseError:
    """
    Wrap a SQLAlchemy/driver exception in our typed error hierarchy.

    Args:
        exc: The original exception
        context: Additional context for debugging

    Returns:
        Typed DatabaseError subclass
    """
    error_str = str(exc).lower()
    ctx = context or {}
    ctx['original_error'] = str(exc)
    ctx['error_type'] = type(exc).__name__

    if 'connection' in error_str or 'connect' in error_str:
        return DatabaseConnectionError(
            f"Database connection failed: {exc}",
            context=ctx,
        )
    elif 'constraint' in error_str or 'unique' in error_str:
        return DatabaseConstraintError(
            f"Database constraint violation: {exc}",
            context=ctx,
        )
    else:
        return DatabaseError(
            f"Database error: {exc}",
            context=ctx,
        )
