"""Relance - safe tool-call orchestration for LLM conversations."""

from .llm_core import (
    ModelClient,
    BaseModelClient,
    OrchestratorSettings,
    OrchestrationError,
    HistoryInvariantError,
    ModelClientError,
    get_logger,
    setup_logging,
    SystemMessage,
    UserMessage,
    AssistantMessage,
    AssistantToolCallsMessage,
    ToolResultMessage,
    ToolDefinition,
    ToolInvocationRequest,
    ToolCallResult,
    ErrorCode,
    ToolRegistry,
    ExecutionLedger,
    ToolCallExecutor,
    BatchScheduler,
    CancellationToken,
    HistoryManager,
    RelanceController,
    TurnOutcome,
    TurnLimits,
    RelancePhase,
    StopReason,
    ToolOrchestrator,
)
from .llm_impl.openai_api import OpenAIModelClient, OpenAIToolRegistry

__all__ = [
    "ModelClient",
    "BaseModelClient",
    "OrchestratorSettings",
    "OrchestrationError",
    "HistoryInvariantError",
    "ModelClientError",
    "get_logger",
    "setup_logging",
    "SystemMessage",
    "UserMessage",
    "AssistantMessage",
    "AssistantToolCallsMessage",
    "ToolResultMessage",
    "ToolDefinition",
    "ToolInvocationRequest",
    "ToolCallResult",
    "ErrorCode",
    "ToolRegistry",
    "ExecutionLedger",
    "ToolCallExecutor",
    "BatchScheduler",
    "CancellationToken",
    "HistoryManager",
    "RelanceController",
    "TurnOutcome",
    "TurnLimits",
    "RelancePhase",
    "StopReason",
    "ToolOrchestrator",
    "OpenAIModelClient",
    "OpenAIToolRegistry",
]
