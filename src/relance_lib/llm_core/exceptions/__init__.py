"""Export the exception hierarchy used across registration, execution and history paths."""

from .exceptions import (
    OrchestrationError,
    ToolRegistrationError,
    ToolNotFoundError,
    ToolValidationError,
    ToolExecutionError,
    ToolTimeoutError,
    ToolCancelledError,
    HistoryInvariantError,
    ModelClientError,
)

__all__ = [
    "OrchestrationError",
    "ToolRegistrationError",
    "ToolNotFoundError",
    "ToolValidationError",
    "ToolExecutionError",
    "ToolTimeoutError",
    "ToolCancelledError",
    "HistoryInvariantError",
    "ModelClientError",
]
