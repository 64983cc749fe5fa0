"""Tool-related data models."""

from .models import ToolDefinition
from .tool_call import ToolInvocationRequest, ToolCallResult, ErrorPayload, ErrorCode

__all__ = ["ToolDefinition", "ToolInvocationRequest", "ToolCallResult", "ErrorPayload", "ErrorCode"]
