"""Tool registry abstraction."""

from .base import ToolRegistry, AUTH_CONTEXT_PARAM

__all__ = ["ToolRegistry", "AUTH_CONTEXT_PARAM"]
