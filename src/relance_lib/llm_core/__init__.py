"""Public exports for the orchestration core."""

from .base import ModelClient, BaseModelClient
from .config import OrchestratorSettings
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
from .logger import get_logger, setup_logging
from .messages import (
    BaseMessage,
    SystemMessage,
    UserMessage,
    AssistantMessage,
    AssistantToolCallsMessage,
    ToolResultMessage,
)
from .tools import (
    ToolDefinition,
    ToolInvocationRequest,
    ToolCallResult,
    ErrorPayload,
    ErrorCode,
    ToolRegistry,
    ExecutionLedger,
    LedgerDecision,
    DenyReason,
    ToolCallExecutor,
    BatchScheduler,
    CancellationToken,
)
from .tools.schema import SchemaValidator
from .history import HistoryManager
from .relance import RelanceController, TurnOutcome, TurnLimits, RelancePhase, StopReason
from .orchestrator import ToolOrchestrator

__all__ = [
    "ModelClient",
    "BaseModelClient",
    "OrchestratorSettings",
    "OrchestrationError",
    "ToolRegistrationError",
    "ToolNotFoundError",
    "ToolValidationError",
    "ToolExecutionError",
    "ToolTimeoutError",
    "ToolCancelledError",
    "HistoryInvariantError",
    "ModelClientError",
    "get_logger",
    "setup_logging",
    "BaseMessage",
    "SystemMessage",
    "UserMessage",
    "AssistantMessage",
    "AssistantToolCallsMessage",
    "ToolResultMessage",
    "ToolDefinition",
    "ToolInvocationRequest",
    "ToolCallResult",
    "ErrorPayload",
    "ErrorCode",
    "ToolRegistry",
    "ExecutionLedger",
    "LedgerDecision",
    "DenyReason",
    "ToolCallExecutor",
    "BatchScheduler",
    "CancellationToken",
    "SchemaValidator",
    "HistoryManager",
    "RelanceController",
    "TurnOutcome",
    "TurnLimits",
    "RelancePhase",
    "StopReason",
    "ToolOrchestrator",
]
