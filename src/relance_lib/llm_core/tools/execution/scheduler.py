"""Bounded-size batch execution of tool invocation requests."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, List, Optional, Sequence

from ...logger import get_logger
from ..models import ErrorCode, ToolCallResult, ToolInvocationRequest
from .cancellation import CancellationToken, sleep_or_cancel
from .executor import ToolCallExecutor

if TYPE_CHECKING:
    from ...config import OrchestratorSettings

logger = get_logger(__name__)


class BatchScheduler:
    """
    Runs a list of invocation requests in consecutive chunks.

    All invocations of a chunk run concurrently and the whole chunk is joined
    before the next one starts. A pause separates two chunks. Results come back
    in request order, and a failing invocation never aborts its siblings.
    """

    def __init__(
        self,
        executor: ToolCallExecutor,
        max_batch_size: int = 20,
        inter_batch_pause: float = 1.0,
    ) -> None:
        """
        Args:
            executor: Executor used for every single invocation.
            max_batch_size: Maximum number of invocations per chunk.
            inter_batch_pause: Pause between two chunks, in seconds.
        """
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        if inter_batch_pause < 0:
            raise ValueError("inter_batch_pause must not be negative")
        self.executor = executor
        self.max_batch_size = max_batch_size
        self.inter_batch_pause = inter_batch_pause

    @classmethod
    def from_settings(cls, executor: ToolCallExecutor, settings: "OrchestratorSettings") -> "BatchScheduler":
        return cls(
            executor,
            max_batch_size=settings.max_batch_size,
            inter_batch_pause=settings.inter_batch_pause,
        )

    @staticmethod
    def partition(
        requests: Sequence[ToolInvocationRequest], size: int
    ) -> List[List[ToolInvocationRequest]]:
        """Split ``requests`` into consecutive chunks of at most ``size`` items."""
        if size < 1:
            raise ValueError("size must be at least 1")
        return [list(requests[i : i + size]) for i in range(0, len(requests), size)]

    async def run_all(
        self,
        requests: Sequence[ToolInvocationRequest],
        auth_context: Any = None,
        batch_id: str = "default",
        cancellation: Optional[CancellationToken] = None,
    ) -> List[ToolCallResult]:
        """Execute every request and return one result per request, in request order.

        Args:
            requests: Invocations requested by the model.
            auth_context: Opaque credential passed through to handlers.
            batch_id: Logical turn context shared by all chunks of this call.
            cancellation: Optional token. Once cancelled, no further chunk starts
                and the remaining requests receive ``CANCELLED`` results.

        Returns:
            A list with ``len(requests)`` results where ``results[i]`` answers ``requests[i]``.
        """
        chunks = self.partition(requests, self.max_batch_size)
        results: List[ToolCallResult] = []

        if chunks:
            logger.info(
                f"Scheduling {len(requests)} tool call(s) in {len(chunks)} chunk(s) "
                f"of at most {self.max_batch_size} (batch '{batch_id}')."
            )

        for index, chunk in enumerate(chunks):
            if cancellation is not None and cancellation.cancelled:
                results.extend(self._cancelled_results(chunk, cancellation))
                continue

            logger.debug(f"Running chunk {index + 1}/{len(chunks)} with {len(chunk)} call(s).")
            outcomes = await asyncio.gather(
                *(
                    self.executor.execute(request, auth_context, batch_id, cancellation)
                    for request in chunk
                ),
                return_exceptions=True,
            )

            for request, outcome in zip(chunk, outcomes):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                if isinstance(outcome, BaseException):
                    logger.error(
                        f"Unexpected error while executing '{request.tool_name}' (ID: {request.id}): {outcome}",
                        exc_info=outcome,
                    )
                    results.append(
                        ToolCallResult.failure(
                            request,
                            ErrorCode.EXECUTION_ERROR,
                            str(outcome) or type(outcome).__name__,
                            {"exception_type": type(outcome).__name__},
                        )
                    )
                else:
                    results.append(outcome)

            is_last = index == len(chunks) - 1
            if not is_last and self.inter_batch_pause > 0:
                logger.debug(f"Pausing {self.inter_batch_pause}s before next chunk.")
                await sleep_or_cancel(self.inter_batch_pause, cancellation)

        failed = sum(1 for r in results if not r.success)
        if failed:
            logger.info(f"Batch '{batch_id}' finished: {len(results) - failed} succeeded, {failed} failed.")
        return results

    @staticmethod
    def _cancelled_results(
        chunk: Sequence[ToolInvocationRequest], cancellation: CancellationToken
    ) -> List[ToolCallResult]:
        reason = cancellation.reason or "Cancelled"
        return [ToolCallResult.failure(request, ErrorCode.CANCELLED, reason) for request in chunk]
