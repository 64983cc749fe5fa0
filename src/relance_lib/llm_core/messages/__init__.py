"""Expose provider-agnostic message model types shared by the orchestration components."""

from .models import (
    BaseMessage,
    SystemMessage,
    UserMessage,
    AssistantMessage,
    AssistantToolCallsMessage,
    ToolResultMessage,
    ChatMessage,
    ChatMessageList,
)

__all__ = [
    "BaseMessage",
    "SystemMessage",
    "UserMessage",
    "AssistantMessage",
    "AssistantToolCallsMessage",
    "ToolResultMessage",
    "ChatMessage",
    "ChatMessageList",
]
