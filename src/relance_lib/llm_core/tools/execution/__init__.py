"""Tool execution: single-call executor, batch scheduler and cancellation."""

from .cancellation import CancellationToken, sleep_or_cancel
from .executor import ToolCallExecutor
from .scheduler import BatchScheduler

__all__ = ["CancellationToken", "sleep_or_cancel", "ToolCallExecutor", "BatchScheduler"]
