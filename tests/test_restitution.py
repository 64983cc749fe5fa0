import pytest

from relance_lib import ErrorCode, ToolCallResult, ToolInvocationRequest
from relance_lib.llm_core.relance import (
    STOP_NOTICES,
    StopReason,
    looks_like_raw_json,
    restitute_final_text,
    summarize_results,
)

REQUEST = ToolInvocationRequest(id="t1", tool_name="create_folder", arguments_json='{"name": "Test1"}')
OK = ToolCallResult.ok(REQUEST, {"id": 1})
FAILED = ToolCallResult.failure(
    ToolInvocationRequest(id="t2", tool_name="create_note"), ErrorCode.TOOL_NOT_FOUND, "Tool 'create_note' not found"
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ('{"success": true, "result": {"id": 1}}', True),
        ("[1, 2, 3]", True),
        ('```json\n{"a": 1}\n```', True),
        ("I created the folder Test1.", False),
        ("{not json at all", False),
        ("", False),
        (None, False),
    ],
)
def test_looks_like_raw_json(text, expected) -> None:
    assert looks_like_raw_json(text) is expected


def test_summarize_results() -> None:
    assert summarize_results([OK, FAILED]) == (
        "- create_folder: succeeded\n- create_note: failed (Tool 'create_note' not found)"
    )
    assert summarize_results([]) == ""


def test_plain_answer_is_kept() -> None:
    assert restitute_final_text("Folder created.", [OK]) == "Folder created."


def test_raw_json_answer_is_replaced_by_summary() -> None:
    text = restitute_final_text('{"success": true}', [OK, FAILED])
    assert text.startswith("Here is what was done:")
    assert "- create_folder: succeeded" in text
    assert "{" not in text.splitlines()[0]


def test_empty_answer_without_results() -> None:
    assert restitute_final_text("", []) == "I could not produce an answer for this request."


def test_forced_final_includes_notice_and_summary() -> None:
    text = restitute_final_text(None, [OK], StopReason.RELANCE_BUDGET_EXCEEDED)
    assert text.startswith(STOP_NOTICES[StopReason.RELANCE_BUDGET_EXCEEDED])
    assert "Actions performed:\n- create_folder: succeeded" in text


def test_every_stop_reason_has_a_notice() -> None:
    assert set(STOP_NOTICES) == set(StopReason)
    assert restitute_final_text(None, [], StopReason.CANCELLED) == STOP_NOTICES[StopReason.CANCELLED]
