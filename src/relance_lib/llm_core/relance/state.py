"""
Relance state machine.

A user message drives one *turn*: the model is invoked, its tool calls are
executed, the model is invoked again (a relance), and so on until it answers in
plain text or a limit forces a final answer. Each transition is a pure function
of the current ``TurnState`` returning the next state and the action the
controller must perform.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, FrozenSet, Optional, Sequence, Tuple, Union

from ..messages import AssistantMessage, AssistantToolCallsMessage
from ..tools.ledger import compute_signature
from ..tools.models import ToolCallResult, ToolInvocationRequest

if TYPE_CHECKING:
    from ..config import OrchestratorSettings


class RelancePhase(str, Enum):
    AWAITING_MODEL = "AWAITING_MODEL"
    EXECUTING_TOOLS = "EXECUTING_TOOLS"
    FINAL_ANSWER = "FINAL_ANSWER"
    FORCED_FINAL = "FORCED_FINAL"

    @property
    def is_terminal(self) -> bool:
        return self in (RelancePhase.FINAL_ANSWER, RelancePhase.FORCED_FINAL)


class StopReason(str, Enum):
    """Why a turn ended in ``FORCED_FINAL``."""

    RELANCE_BUDGET_EXCEEDED = "RELANCE_BUDGET_EXCEEDED"
    REPEATED_TOOL_CALL_SET = "REPEATED_TOOL_CALL_SET"
    TOOL_CALL_CAP_REACHED = "TOOL_CALL_CAP_REACHED"
    TIME_BUDGET_EXCEEDED = "TIME_BUDGET_EXCEEDED"
    CANCELLED = "CANCELLED"
    MODEL_ERROR = "MODEL_ERROR"

    def __str__(self) -> str:
        return self.value


class Action(str, Enum):
    """Side effect the controller performs after a transition."""

    SEND_TO_MODEL = "SEND_TO_MODEL"
    EXECUTE_TOOLS = "EXECUTE_TOOLS"
    EMIT_FINAL = "EMIT_FINAL"
    FORCE_FINAL = "FORCE_FINAL"


@dataclass(frozen=True)
class TurnLimits:
    """Per-user-message limits enforced by the transitions."""

    relance_budget: int = 3
    max_total_tool_calls: Optional[int] = None
    max_turn_seconds: Optional[float] = None

    def __post_init__(self) -> None:
        if self.relance_budget < 0:
            raise ValueError("relance_budget must not be negative")

    @classmethod
    def from_settings(cls, settings: "OrchestratorSettings") -> "TurnLimits":
        return cls(
            relance_budget=settings.relance_budget,
            max_total_tool_calls=settings.max_total_tool_calls,
            max_turn_seconds=settings.max_turn_seconds,
        )


CallSetKey = Tuple[str, ...]


def call_set_key(calls: Sequence[ToolInvocationRequest]) -> CallSetKey:
    """Order-independent identity of a set of calls, ignoring their ids."""
    return tuple(sorted(compute_signature(call.tool_name, call.arguments_json) for call in calls))


@dataclass(frozen=True)
class TurnState:
    """Immutable snapshot of one turn.

    Attributes:
        phase: Current phase.
        relance_count: Completed ExecutingTools -> AwaitingModel transitions.
        executed_calls: Tool calls sent to the scheduler so far.
        started_at: Clock reading when the turn began.
        seen_call_sets: Call sets already executed during this turn.
        pending_calls: Calls to execute while in ``EXECUTING_TOOLS``.
        stop_reason: Set once the phase is ``FORCED_FINAL``.
        final_text: Model answer, or error detail for a forced final.
    """

    phase: RelancePhase = RelancePhase.AWAITING_MODEL
    relance_count: int = 0
    executed_calls: int = 0
    started_at: float = 0.0
    seen_call_sets: FrozenSet[CallSetKey] = field(default_factory=frozenset)
    pending_calls: Tuple[ToolInvocationRequest, ...] = ()
    stop_reason: Optional[StopReason] = None
    final_text: Optional[str] = None


@dataclass(frozen=True)
class Transition:
    state: TurnState
    action: Action


def _require(state: TurnState, phase: RelancePhase) -> None:
    if state.phase is not phase:
        raise ValueError(f"Invalid transition from {state.phase.value}; expected {phase.value}.")


def _force(state: TurnState, reason: StopReason, detail: Optional[str] = None) -> Transition:
    return Transition(
        replace(state, phase=RelancePhase.FORCED_FINAL, stop_reason=reason, pending_calls=(), final_text=detail),
        Action.FORCE_FINAL,
    )


def on_model_reply(
    state: TurnState,
    reply: Union[AssistantMessage, AssistantToolCallsMessage],
    limits: TurnLimits,
    now: float,
) -> Transition:
    """Classify a model reply received in ``AWAITING_MODEL``.

    A text reply ends the turn. Tool calls are executed unless the relance
    budget is spent, the same call set already ran in this turn, the call cap
    would be exceeded, or the wall-clock budget is spent.
    """
    _require(state, RelancePhase.AWAITING_MODEL)

    if not isinstance(reply, AssistantToolCallsMessage) or not reply.tool_calls:
        return Transition(
            replace(state, phase=RelancePhase.FINAL_ANSWER, final_text=reply.content),
            Action.EMIT_FINAL,
        )

    calls = tuple(reply.tool_calls)
    key = call_set_key(calls)

    if state.relance_count >= limits.relance_budget:
        return _force(state, StopReason.RELANCE_BUDGET_EXCEEDED)
    if key in state.seen_call_sets:
        return _force(state, StopReason.REPEATED_TOOL_CALL_SET)
    if limits.max_total_tool_calls is not None and state.executed_calls + len(calls) > limits.max_total_tool_calls:
        return _force(state, StopReason.TOOL_CALL_CAP_REACHED)
    if limits.max_turn_seconds is not None and now - state.started_at >= limits.max_turn_seconds:
        return _force(state, StopReason.TIME_BUDGET_EXCEEDED)

    return Transition(
        replace(
            state,
            phase=RelancePhase.EXECUTING_TOOLS,
            pending_calls=calls,
            seen_call_sets=state.seen_call_sets | {key},
        ),
        Action.EXECUTE_TOOLS,
    )


def on_tools_executed(state: TurnState, results: Sequence[ToolCallResult]) -> Transition:
    """Return to ``AWAITING_MODEL`` once every pending call has a result: this is the relance."""
    _require(state, RelancePhase.EXECUTING_TOOLS)
    if len(results) != len(state.pending_calls):
        raise ValueError(f"Expected {len(state.pending_calls)} result(s), got {len(results)}.")
    return Transition(
        replace(
            state,
            phase=RelancePhase.AWAITING_MODEL,
            relance_count=state.relance_count + 1,
            executed_calls=state.executed_calls + len(results),
            pending_calls=(),
        ),
        Action.SEND_TO_MODEL,
    )


def on_cancelled(state: TurnState) -> Transition:
    if state.phase.is_terminal:
        raise ValueError(f"Turn already ended in {state.phase.value}.")
    return _force(state, StopReason.CANCELLED)


def on_model_error(state: TurnState, error: str) -> Transition:
    _require(state, RelancePhase.AWAITING_MODEL)
    return _force(state, StopReason.MODEL_ERROR, error)
