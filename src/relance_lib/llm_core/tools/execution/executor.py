"""Single tool call execution: ledger check, resolution, validation, bounded invocation."""

from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any, Dict, Optional

from ...exceptions import ToolCancelledError, ToolNotFoundError, ToolTimeoutError, ToolValidationError
from ...logger import get_logger
from ..ledger import DenyReason, ExecutionLedger
from ..models import ErrorCode, ToolCallResult, ToolDefinition, ToolInvocationRequest
from ..registry import AUTH_CONTEXT_PARAM, ToolRegistry
from .cancellation import CancellationToken

logger = get_logger(__name__)

_DENY_CODES = {
    DenyReason.DUPLICATE_ID: ErrorCode.ANTI_LOOP_ID,
    DenyReason.DUPLICATE_SIGNATURE: ErrorCode.ANTI_LOOP_SIGNATURE,
}


class ToolCallExecutor:
    """Executes one invocation request and always returns a normalized result.

    Every failure mode (anti-loop denial, unknown tool, invalid arguments,
    handler exception, timeout, cancellation) is reported as a failed
    ``ToolCallResult`` so the transcript always receives a reply for the call.
    """

    def __init__(
        self,
        *,
        registry: ToolRegistry,
        ledger: ExecutionLedger,
        tool_timeout: float = 180.0,
    ) -> None:
        """Initialize the executor.

        Args:
            registry: Tool registry used to resolve and validate calls.
            ledger: Shared anti-loop ledger.
            tool_timeout: Timeout in seconds for one handler call. Default is 180 seconds.
        """
        self._registry = registry
        self._ledger = ledger
        self._tool_timeout = tool_timeout

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def ledger(self) -> ExecutionLedger:
        return self._ledger

    async def execute(
        self,
        request: ToolInvocationRequest,
        auth_context: Any = None,
        batch_id: str = "default",
        cancellation: Optional[CancellationToken] = None,
    ) -> ToolCallResult:
        """Execute a single tool call request.

        Args:
            request: The invocation requested by the model.
            auth_context: Opaque credential passed through to handlers that accept it.
            batch_id: Logical turn context used by the ledger's signature check.
            cancellation: Optional conversation-level cancellation token.

        Returns:
            The result of the call, successful or not.
        """
        logger.debug(f"Handling tool call: {request.tool_name} (ID: {request.id})")

        if cancellation is not None and cancellation.cancelled:
            return self._cancelled(request, cancellation)

        decision = self._ledger.check_and_record(request, batch_id)
        if decision.reason is not None:
            details: Dict[str, Any] = {"reason": str(decision.reason), "batch_id": batch_id}
            if decision.conflicting_entry is not None:
                details["conflicting_call_id"] = decision.conflicting_entry.id
            return ToolCallResult.failure(
                request,
                _DENY_CODES[decision.reason],
                self._denial_message(request, decision.reason),
                details,
            )

        try:
            tool_def = self._registry.resolve(request.tool_name)
        except ToolNotFoundError as exc:
            logger.warning(str(exc))
            return ToolCallResult.failure(
                request,
                ErrorCode.TOOL_NOT_FOUND,
                str(exc),
                {"available_tools": self._registry.names},
            )

        try:
            function_args = self._registry.validate(request.tool_name, request.arguments_json)
        except ToolValidationError as exc:
            logger.warning(f"Validation error for '{request.tool_name}': {exc}")
            return ToolCallResult.failure(request, ErrorCode.INVALID_ARGUMENTS, str(exc))

        start = time.perf_counter()
        try:
            logger.info(f"Executing tool '{request.tool_name}' (ID: {request.id})...")
            invocation = self._execute_tool(tool_def, function_args, auth_context)
            if cancellation is not None:
                output = await cancellation.race(invocation)
            else:
                output = await invocation
        except ToolCancelledError:
            return self._cancelled(request, cancellation)
        except ToolTimeoutError as exc:
            logger.warning(f"Tool '{request.tool_name}' timed out: {exc}")
            return ToolCallResult.failure(
                request, ErrorCode.EXECUTION_ERROR, str(exc), {"timeout": True, "timeout_seconds": exc.timeout_seconds}
            )
        except Exception as exc:
            msg = str(exc) or type(exc).__name__
            logger.warning(f"Error in '{request.tool_name}': {msg} ({type(exc).__name__})", exc_info=True)
            return ToolCallResult.failure(
                request, ErrorCode.EXECUTION_ERROR, msg, {"exception_type": type(exc).__name__}
            )

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"Tool '{request.tool_name}' executed successfully in {elapsed_ms:.1f}ms.")
        return ToolCallResult.ok(request, output)

    async def _execute_tool(
        self, tool_def: ToolDefinition, function_args: Dict[str, Any], auth_context: Any
    ) -> Any:
        """Execute the handler, handling async/sync and timeouts.

        Raises:
            ToolTimeoutError: If execution times out.
        """
        kwargs = dict(function_args)
        if tool_def.accepts_auth_context:
            kwargs[AUTH_CONTEXT_PARAM] = auth_context

        tool_function = tool_def.func
        try:
            if inspect.iscoroutinefunction(tool_function):
                return await asyncio.wait_for(tool_function(**kwargs), timeout=self._tool_timeout)

            return await asyncio.wait_for(
                asyncio.to_thread(tool_function, **kwargs),
                timeout=self._tool_timeout,
            )

        except asyncio.TimeoutError as exc:
            msg = f"Tool execution timed out after {self._tool_timeout} seconds."
            raise ToolTimeoutError(msg, self._tool_timeout) from exc

    @staticmethod
    def _denial_message(request: ToolInvocationRequest, reason: DenyReason) -> str:
        if reason is DenyReason.DUPLICATE_ID:
            return f"Tool call '{request.id}' was already executed; it will not run again."
        return (
            f"An identical call to '{request.tool_name}' was executed moments ago in another round; "
            "use its result instead of repeating the call."
        )

    @staticmethod
    def _cancelled(request: ToolInvocationRequest, cancellation: Optional[CancellationToken]) -> ToolCallResult:
        reason = cancellation.reason if cancellation is not None and cancellation.reason else "Cancelled"
        logger.info(f"Tool call '{request.id}' ({request.tool_name}) cancelled: {reason}")
        return ToolCallResult.failure(request, ErrorCode.CANCELLED, reason)
