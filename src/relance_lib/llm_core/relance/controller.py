"""Relance controller: drives one user message through the turn-taking state machine."""

import asyncio
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

from ..base import ModelClient
from ..exceptions import ToolCancelledError
from ..history import HistoryManager
from ..logger import get_logger
from ..messages import AssistantMessage, AssistantToolCallsMessage, ToolResultMessage, UserMessage
from ..tools.execution import BatchScheduler, CancellationToken
from ..tools.ledger import DenyReason
from ..tools.models import ErrorCode, ToolCallResult, ToolInvocationRequest
from .restitution import restitute_final_text
from .state import (
    Action,
    RelancePhase,
    StopReason,
    TurnLimits,
    TurnState,
    Transition,
    on_cancelled,
    on_model_error,
    on_model_reply,
    on_tools_executed,
)

logger = get_logger(__name__)


def new_batch_id() -> str:
    return f"batch-{uuid.uuid4().hex}"


def normalize_call_ids(
    calls: Sequence[ToolInvocationRequest],
) -> Tuple[List[ToolInvocationRequest], Dict[str, str]]:
    """Give every repeated id of one model response a unique derived id.

    The first occurrence keeps its id; later ones become ``"<id>#<n>"``.

    Returns:
        The calls in their original order, and a mapping from each derived id
        to the id it repeats.
    """
    taken: Set[str] = {call.id for call in calls}
    seen: Set[str] = set()
    normalized: List[ToolInvocationRequest] = []
    renamed: Dict[str, str] = {}

    for call in calls:
        if call.id not in seen:
            seen.add(call.id)
            normalized.append(call)
            continue
        n = 1
        while f"{call.id}#{n}" in taken:
            n += 1
        new_id = f"{call.id}#{n}"
        taken.add(new_id)
        seen.add(new_id)
        renamed[new_id] = call.id
        normalized.append(replace(call, id=new_id))

    return normalized, renamed


@dataclass
class TurnOutcome:
    """Result of one user message.

    Attributes:
        final_text: Text appended to the history as the assistant's answer.
        phase: ``FINAL_ANSWER`` or ``FORCED_FINAL``.
        stop_reason: Why the turn was forced to end, None for a model answer.
        relance_count: Number of relances performed.
        tool_results: Results of every executed round, in execution order.
        rounds: Number of tool execution rounds.
    """

    final_text: str
    phase: RelancePhase
    stop_reason: Optional[StopReason] = None
    relance_count: int = 0
    tool_results: List[ToolCallResult] = field(default_factory=list)
    rounds: int = 0

    @property
    def forced(self) -> bool:
        return self.phase is RelancePhase.FORCED_FINAL


class RelanceController:
    """
    Orchestrates model calls and tool execution for one conversation at a time.

    The controller is sequential: one transition at a time, and two turns of
    the same conversation must not run concurrently.
    """

    def __init__(
        self,
        model_client: ModelClient,
        scheduler: BatchScheduler,
        limits: Optional[TurnLimits] = None,
        max_history_messages: int = 30,
        clock: Callable[[], float] = time.monotonic,
        batch_id_factory: Callable[[], str] = new_batch_id,
    ) -> None:
        """
        Args:
            model_client: Provider client implementing ``send(history)``.
            scheduler: Batch scheduler used for every tool round.
            limits: Relance budget and optional call / time caps.
            max_history_messages: Plain messages included when calling the model.
            clock: Monotonic time source for the wall-clock budget.
            batch_id_factory: Produces one batch id per tool round.
        """
        self.model_client = model_client
        self.scheduler = scheduler
        self.limits = limits or TurnLimits()
        self.max_history_messages = max_history_messages
        self._clock = clock
        self._batch_id_factory = batch_id_factory

    @classmethod
    def from_settings(
        cls, model_client: ModelClient, scheduler: BatchScheduler, settings: Any
    ) -> "RelanceController":
        return cls(
            model_client,
            scheduler,
            limits=TurnLimits.from_settings(settings),
            max_history_messages=settings.max_history_messages,
        )

    async def run(
        self,
        history: HistoryManager,
        user_message: Union[str, UserMessage],
        auth_context: Any = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> TurnOutcome:
        """Process one user message until a final answer is appended to ``history``.

        Args:
            history: The conversation transcript, mutated in place.
            user_message: The new user input.
            auth_context: Opaque credential passed through to tool handlers.
            cancellation: Optional conversation-level cancellation token.

        Returns:
            The outcome of the turn. Failures are reported through
            ``stop_reason``; only ``asyncio.CancelledError`` and history misuse raise.
        """
        if isinstance(user_message, str):
            user_message = UserMessage(content=user_message)
        history.append(user_message)

        state = TurnState(started_at=self._clock())
        all_results: List[ToolCallResult] = []
        rounds = 0

        while not state.phase.is_terminal:
            if cancellation is not None and cancellation.cancelled:
                state = on_cancelled(state).state
                break

            transition = await self._ask_model(state, history, cancellation)
            state = transition.state
            logger.debug(f"Transition -> {state.phase.value} (relance {state.relance_count}).")

            if transition.action is not Action.EXECUTE_TOOLS:
                break

            calls, renamed = normalize_call_ids(state.pending_calls)
            history.append(AssistantToolCallsMessage(tool_calls=calls))
            batch_id = self._batch_id_factory()
            logger.info(f"Round {rounds + 1}: executing {len(calls)} tool call(s) in batch '{batch_id}'.")

            results = await self._execute_round(calls, renamed, auth_context, batch_id, cancellation)
            for result in results:
                history.append(ToolResultMessage.from_result(result))
            all_results.extend(results)
            rounds += 1

            state = on_tools_executed(state, results).state

        if state.phase is RelancePhase.FORCED_FINAL:
            logger.warning(
                f"Turn forced to end: {state.stop_reason} after {state.relance_count} relance(s)"
                + (f" ({state.final_text})" if state.final_text else "")
            )
            final_text = restitute_final_text(None, all_results, state.stop_reason)
        else:
            final_text = restitute_final_text(state.final_text, all_results)

        history.append(AssistantMessage(content=final_text))
        return TurnOutcome(
            final_text=final_text,
            phase=state.phase,
            stop_reason=state.stop_reason,
            relance_count=state.relance_count,
            tool_results=all_results,
            rounds=rounds,
        )

    async def _execute_round(
        self,
        calls: List[ToolInvocationRequest],
        renamed: Dict[str, str],
        auth_context: Any,
        batch_id: str,
        cancellation: Optional[CancellationToken],
    ) -> List[ToolCallResult]:
        """Run the calls of one round; calls whose id repeated an earlier one are denied."""
        runnable = [call for call in calls if call.id not in renamed]
        executed = await self.scheduler.run_all(runnable, auth_context, batch_id, cancellation)
        by_id = {result.tool_call_id: result for result in executed}

        results: List[ToolCallResult] = []
        for call in calls:
            original = renamed.get(call.id)
            if original is None:
                results.append(by_id[call.id])
                continue
            logger.warning(f"Tool call id '{original}' repeated in one response; '{call.id}' was not executed.")
            results.append(
                ToolCallResult.failure(
                    call,
                    ErrorCode.ANTI_LOOP_ID,
                    f"Tool call id '{original}' was used more than once in the same response; "
                    "this call was not executed.",
                    {"reason": str(DenyReason.DUPLICATE_ID), "batch_id": batch_id, "conflicting_call_id": original},
                )
            )
        return results

    async def _ask_model(
        self, state: TurnState, history: HistoryManager, cancellation: Optional[CancellationToken]
    ) -> Transition:
        bounded = history.get_bounded(self.max_history_messages)
        try:
            if cancellation is not None:
                reply = await cancellation.race(self.model_client.send(bounded))
            else:
                reply = await self.model_client.send(bounded)
        except ToolCancelledError:
            return on_cancelled(state)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error(f"Model client failed: {exc}", exc_info=True)
            return on_model_error(state, str(exc) or type(exc).__name__)

        return on_model_reply(state, reply, self.limits, self._clock())
