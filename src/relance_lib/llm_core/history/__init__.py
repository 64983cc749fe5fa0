"""Bounded conversation history."""

from .manager import HistoryManager

__all__ = ["HistoryManager"]
