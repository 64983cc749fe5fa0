"""Expose the OpenAI model client and tool registry implementations."""

from .core import OpenAIModelClient
from .registry import OpenAIToolRegistry

__all__ = ["OpenAIModelClient", "OpenAIToolRegistry"]
