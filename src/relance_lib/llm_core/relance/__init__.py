"""Relance state machine and controller."""

from .state import (
    RelancePhase,
    StopReason,
    Action,
    TurnLimits,
    TurnState,
    Transition,
    call_set_key,
    on_model_reply,
    on_tools_executed,
    on_cancelled,
    on_model_error,
)
from .restitution import restitute_final_text, summarize_results, looks_like_raw_json, STOP_NOTICES
from .controller import RelanceController, TurnOutcome, new_batch_id, normalize_call_ids

__all__ = [
    "RelancePhase",
    "StopReason",
    "Action",
    "TurnLimits",
    "TurnState",
    "Transition",
    "call_set_key",
    "on_model_reply",
    "on_tools_executed",
    "on_cancelled",
    "on_model_error",
    "restitute_final_text",
    "summarize_results",
    "looks_like_raw_json",
    "STOP_NOTICES",
    "RelanceController",
    "TurnOutcome",
    "new_batch_id",
    "normalize_call_ids",
]
