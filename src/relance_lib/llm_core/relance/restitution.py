"""Natural-language restitution of a turn's final text."""

import json
import re
from typing import Dict, Optional, Sequence

from ..tools.models import ToolCallResult
from .state import StopReason

_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)

STOP_NOTICES: Dict[StopReason, str] = {
    StopReason.RELANCE_BUDGET_EXCEEDED: (
        "I stopped here because this request needed more tool rounds than allowed; the task may be incomplete."
    ),
    StopReason.REPEATED_TOOL_CALL_SET: (
        "I stopped because I was about to repeat actions that were already performed; the task may be incomplete."
    ),
    StopReason.TOOL_CALL_CAP_REACHED: (
        "I stopped because this request reached the maximum number of actions; the task may be incomplete."
    ),
    StopReason.TIME_BUDGET_EXCEEDED: (
        "I stopped because this request took too long; the task may be incomplete."
    ),
    StopReason.CANCELLED: "The request was cancelled before it could finish.",
    StopReason.MODEL_ERROR: "I could not get an answer from the model, so the request ended early.",
}


def looks_like_raw_json(text: Optional[str]) -> bool:
    """True when ``text`` is a bare JSON object or array, optionally inside a code fence."""
    if not text:
        return False
    candidate = text.strip()
    fenced = _FENCE.match(candidate)
    if fenced:
        candidate = fenced.group(1).strip()
    if not candidate or candidate[0] not in "{[":
        return False
    try:
        json.loads(candidate)
    except ValueError:
        return False
    return True


def summarize_results(results: Sequence[ToolCallResult]) -> str:
    """One line per result, e.g. ``- create_folder: failed (Tool 'x' not found)``."""
    lines = []
    for result in results:
        if result.success:
            lines.append(f"- {result.tool_name}: succeeded")
        else:
            error = result.error
            message = error.message if error else str(result.payload)
            lines.append(f"- {result.tool_name}: failed ({message})")
    return "\n".join(lines)


def restitute_final_text(
    text: Optional[str],
    results: Sequence[ToolCallResult],
    stop_reason: Optional[StopReason] = None,
) -> str:
    """Produce the final text shown to the user.

    Forced stops get a notice followed by a summary of the actions performed.
    A model answer that is empty or raw JSON is replaced by that summary.
    """
    summary = summarize_results(results)

    if stop_reason is not None:
        notice = STOP_NOTICES[stop_reason]
        return f"{notice}\n\nActions performed:\n{summary}" if summary else notice

    if text and text.strip() and not looks_like_raw_json(text):
        return text

    if summary:
        return f"Here is what was done:\n{summary}"
    return "I could not produce an answer for this request."
