"""
Custom exception classes for the tool orchestration engine.

Exceptions are raised inside components (registry lookups, argument validation,
handler timeouts, transcript misuse) and translated into failed tool results at
the executor seam. Only programming errors reach the caller of a turn.
"""


class OrchestrationError(Exception):
    """Base exception for all orchestration errors."""

    pass


class ToolRegistrationError(OrchestrationError):
    """Raised when there is an error registering a tool."""

    pass


class ToolNotFoundError(OrchestrationError):
    """Raised when a requested tool is not found in the registry."""

    pass


class ToolValidationError(OrchestrationError):
    """Raised when tool arguments or a tool definition are invalid."""

    pass


class ToolExecutionError(OrchestrationError):
    """Raised when a tool fails or times out during execution."""

    pass


class ToolTimeoutError(ToolExecutionError):
    """Raised when a handler does not finish within the configured timeout."""

    def __init__(self, message: str, timeout_seconds: float):
        super().__init__(message)
        self.timeout_seconds = timeout_seconds


class ToolCancelledError(OrchestrationError):
    """Raised when a conversation-level cancellation interrupts a tool call."""

    pass


class HistoryInvariantError(OrchestrationError):
    """Raised when an append would break tool-call / tool-result pairing."""

    pass


class ModelClientError(OrchestrationError):
    """Raised when the model provider cannot produce a reply."""

    pass
