"""Custom exceptions for the decisioning workflow runtime."""

from typing import Any, Optional

from core.constants import ErrorCode


class DecisioningException(Exception):
    """Base exception for the decisioning runtime."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code.

        Args:
            message: Exception message
            status_code: HTTP status code
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(DecisioningException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize NotFoundError with 404 status code."""
        super().__init__(message, 404)


class ValidationError(DecisioningException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation failed"):
        """Initialize ValidationError with 422 status code."""
        super().__init__(message, 422)


class ConflictError(DecisioningException):
    """Resource conflict exception."""

    def __init__(self, message: str = "Resource conflict"):
        """Initialize ConflictError with 409 status code."""
        super().__init__(message, 409)


class WorkflowExecutionError(DecisioningException):
    """Fatal orchestrator-level failure carrying an error code."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        node_id: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        self.code = code
        self.node_id = node_id
        self.context = context or {}
        super().__init__(message, 500)


class ExpressionError(DecisioningException):
    """A condition expression failed to parse or evaluate."""

    code = ErrorCode.INVALID_CONDITION

    def __init__(self, message: str, expression: str = ""):
        self.expression = expression
        super().__init__(message, 422)


class NodeExecutorNotFoundError(NotFoundError):
    """No executor registered for a node type."""

    def __init__(self, node_type: str):
        self.node_type = node_type
        super().__init__(f"No executor registered for node type: {node_type}")


class OperationNotFoundError(NotFoundError):
    """Async operation id is unknown to the registry."""

    def __init__(self, operation_id: str):
        self.operation_id = operation_id
        super().__init__(f"Operation {operation_id} not found")


class DataSourceError(DecisioningException):
    """External data source call failed."""

    def __init__(self, message: str, source_type: str = ""):
        self.source_type = source_type
        super().__init__(message, 502)
