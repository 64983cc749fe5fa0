"""Tool management: models, registry, ledger and execution."""

from .models import ToolDefinition, ToolInvocationRequest, ToolCallResult, ErrorPayload, ErrorCode
from .registry import ToolRegistry, AUTH_CONTEXT_PARAM
from .ledger import ExecutionLedger, LedgerDecision, LedgerEntry, DenyReason, compute_signature
from .execution import ToolCallExecutor, BatchScheduler, CancellationToken

__all__ = [
    "ToolDefinition",
    "ToolInvocationRequest",
    "ToolCallResult",
    "ErrorPayload",
    "ErrorCode",
    "ToolRegistry",
    "AUTH_CONTEXT_PARAM",
    "ExecutionLedger",
    "LedgerDecision",
    "LedgerEntry",
    "DenyReason",
    "compute_signature",
    "ToolCallExecutor",
    "BatchScheduler",
    "CancellationToken",
]
