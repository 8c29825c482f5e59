"""
Domain exceptions for the order workflow.

Raised by the service layer; the API layer maps them to HTTP responses.
Callers can tell a role problem (ForbiddenTransitionError) from a state
problem (InvalidTransitionError) from a missing reason (MissingReasonError).
"""
from typing import Optional, Dict, Any


class WorkflowError(Exception):
    """Base exception for workflow errors."""
    error_code = "WORKFLOW_ERROR"

    def __init__(self, message: str, error_code: str = None, details: Dict[str, Any] = None):
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class OrderValidationError(WorkflowError):
    """Malformed input or violated order invariant; nothing was written."""
    error_code = "VALIDATION_ERROR"


class MissingReasonError(OrderValidationError):
    """Rejections and corrections need a non-empty reason."""
    error_code = "REASON_REQUIRED"


class ForbiddenTransitionError(WorkflowError):
    """The actor's role, location or ownership does not allow the action."""
    error_code = "FORBIDDEN"


class InvalidTransitionError(WorkflowError):
    """The action is not possible from the order's current status."""
    error_code = "INVALID_TRANSITION"


class OrderNotFoundError(WorkflowError):
    """Unknown order (or unknown ledger row)."""
    error_code = "NOT_FOUND"

    def __init__(self, message: str, order_id: Optional[Any] = None, **kwargs):
        super().__init__(message, **kwargs)
        if order_id is not None:
            self.details.setdefault("order_id", str(order_id))


class DispatchFailure(WorkflowError):
    """Notifier call failed or timed out. Logged, never propagated to callers."""
    error_code = "DISPATCH_FAILURE"
