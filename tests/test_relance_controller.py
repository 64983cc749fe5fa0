import asyncio
from typing import Annotated, Any, Callable, List

import pytest
from pydantic import Field

from relance_lib import (
    AssistantMessage,
    AssistantToolCallsMessage,
    BatchScheduler,
    CancellationToken,
    ErrorCode,
    HistoryInvariantError,
    HistoryManager,
    ModelClientError,
    OrchestratorSettings,
    RelanceController,
    RelancePhase,
    StopReason,
    SystemMessage,
    ToolInvocationRequest,
    ToolResultMessage,
    TurnLimits,
    UserMessage,
)
from relance_lib.llm_core.relance import normalize_call_ids


def req(call_id: str, name: str = "create_folder", folder: str = "Test1") -> ToolInvocationRequest:
    return ToolInvocationRequest(id=call_id, tool_name=name, arguments_json=f'{{"name": "{folder}"}}')


@pytest.fixture
def created(registry: Any) -> List[str]:
    folders: List[str] = []

    @registry.tool
    def create_folder(name: Annotated[str, Field(description="Folder name")], auth_context: Any = None) -> dict:
        """Create a folder."""
        folders.append(name)
        return {"folder": name, "owner": (auth_context or {}).get("user")}

    return folders


@pytest.mark.asyncio
async def test_plain_answer_without_tools(scheduler: BatchScheduler, scripted_client: Callable) -> None:
    client = scripted_client(AssistantMessage(content="Hello!"))
    controller = RelanceController(client, scheduler)
    history = HistoryManager()

    outcome = await controller.run(history, "hi")

    assert outcome.phase is RelancePhase.FINAL_ANSWER
    assert outcome.final_text == "Hello!"
    assert outcome.rounds == 0
    assert [m.kind for m in history.messages] == ["user", "assistant_text"]


@pytest.mark.asyncio
async def test_single_round_then_answer(
    scheduler: BatchScheduler, scripted_client: Callable, make_calls: Callable, created: List[str]
) -> None:
    client = scripted_client(make_calls(req("t1")), AssistantMessage(content="Folder Test1 created."))
    controller = RelanceController(client, scheduler, batch_id_factory=lambda: "batch-fixed")
    history = HistoryManager()

    outcome = await controller.run(history, "create Test1", auth_context={"user": "u1"})

    assert outcome.phase is RelancePhase.FINAL_ANSWER
    assert outcome.final_text == "Folder Test1 created."
    assert outcome.relance_count == 1
    assert outcome.rounds == 1
    assert created == ["Test1"]
    assert outcome.tool_results[0].payload == {"folder": "Test1", "owner": "u1"}
    assert [m.kind for m in history.messages] == ["user", "assistant_tool_calls", "tool_result", "assistant_text"]
    assert history.validate_pairing() == []

    # The relance sends the tool result back to the model.
    second_call = client.calls[1]
    assert isinstance(second_call[-1], ToolResultMessage)
    assert second_call[-1].tool_call_id == "t1"


@pytest.mark.asyncio
async def test_budget_stops_after_three_rounds(
    scheduler: BatchScheduler, scripted_client: Callable, make_calls: Callable, created: List[str]
) -> None:
    replies = [make_calls(req(f"r{i}", folder=f"F{i}")) for i in range(5)]
    client = scripted_client(*replies)
    controller = RelanceController(client, scheduler, limits=TurnLimits(relance_budget=3))
    history = HistoryManager()

    outcome = await controller.run(history, "loop please")

    assert outcome.phase is RelancePhase.FORCED_FINAL
    assert outcome.forced
    assert outcome.stop_reason is StopReason.RELANCE_BUDGET_EXCEEDED
    assert outcome.rounds == 3
    assert outcome.relance_count == 3
    assert created == ["F0", "F1", "F2"]
    assert len(client.calls) == 4
    # Round four's calls never reach the transcript.
    assert all("r3" not in getattr(m, "call_ids", []) for m in history.messages)
    assert isinstance(history.messages[-1], AssistantMessage)
    assert "more tool rounds than allowed" in outcome.final_text
    assert history.validate_pairing() == []


@pytest.mark.asyncio
async def test_repeated_call_set_is_not_executed_again(
    scheduler: BatchScheduler, scripted_client: Callable, make_calls: Callable, created: List[str]
) -> None:
    client = scripted_client(make_calls(req("a1")), make_calls(req("a2")))
    controller = RelanceController(client, scheduler, limits=TurnLimits(relance_budget=10))

    outcome = await controller.run(HistoryManager(), "create Test1")

    assert outcome.stop_reason is StopReason.REPEATED_TOOL_CALL_SET
    assert created == ["Test1"]
    assert outcome.rounds == 1


@pytest.mark.asyncio
async def test_ledger_denial_is_reported_to_model(
    scheduler: BatchScheduler, scripted_client: Callable, make_calls: Callable, created: List[str]
) -> None:
    # Second round repeats the first call plus a new one: not the same set, but
    # the repeated call is denied by the ledger signature check.
    client = scripted_client(
        make_calls(req("a1")),
        make_calls(req("a2"), req("b1", folder="Other")),
        AssistantMessage(content="Both folders exist now."),
    )
    controller = RelanceController(client, scheduler)

    outcome = await controller.run(HistoryManager(), "create folders")

    assert outcome.phase is RelancePhase.FINAL_ANSWER
    assert created == ["Test1", "Other"]
    codes = [r.error_code for r in outcome.tool_results]
    assert codes == [None, ErrorCode.ANTI_LOOP_SIGNATURE, None]


@pytest.mark.asyncio
async def test_raw_json_final_answer_is_restituted(
    scheduler: BatchScheduler, scripted_client: Callable, make_calls: Callable, created: List[str]
) -> None:
    client = scripted_client(make_calls(req("t1")), AssistantMessage(content='{"success": true, "result": {}}'))
    controller = RelanceController(client, scheduler)

    outcome = await controller.run(HistoryManager(), "create Test1")

    assert outcome.phase is RelancePhase.FINAL_ANSWER
    assert outcome.final_text == "Here is what was done:\n- create_folder: succeeded"


@pytest.mark.asyncio
async def test_model_error_becomes_forced_final(scheduler: BatchScheduler, scripted_client: Callable) -> None:
    client = scripted_client(ModelClientError("provider down"))
    controller = RelanceController(client, scheduler)
    history = HistoryManager()

    outcome = await controller.run(history, "hello")

    assert outcome.stop_reason is StopReason.MODEL_ERROR
    assert [m.kind for m in history.messages] == ["user", "assistant_text"]


@pytest.mark.asyncio
async def test_cancelled_before_start(scheduler: BatchScheduler, scripted_client: Callable) -> None:
    client = scripted_client(AssistantMessage(content="never sent"))
    controller = RelanceController(client, scheduler)
    token = CancellationToken()
    token.cancel()

    outcome = await controller.run(HistoryManager(), "hello", cancellation=token)

    assert outcome.stop_reason is StopReason.CANCELLED
    assert client.calls == []


@pytest.mark.asyncio
async def test_cancellation_during_tools_stops_turn(
    executor: Any, registry: Any, scripted_client: Callable, make_calls: Callable
) -> None:
    token = CancellationToken()

    @registry.tool
    async def slow(name: Annotated[str, Field(description="Name")]) -> str:
        """Slow tool that triggers cancellation."""
        token.cancel("user closed the tab")
        await asyncio.sleep(30)
        return name

    scheduler = BatchScheduler(executor, max_batch_size=1, inter_batch_pause=30)
    client = scripted_client(
        make_calls(req("s1", name="slow", folder="a"), req("s2", name="slow", folder="b")),
        AssistantMessage(content="unused"),
    )
    controller = RelanceController(client, scheduler)
    history = HistoryManager()

    outcome = await controller.run(history, "go", cancellation=token)

    assert outcome.stop_reason is StopReason.CANCELLED
    assert [r.error_code for r in outcome.tool_results] == [ErrorCode.CANCELLED, ErrorCode.CANCELLED]
    assert len(client.calls) == 1
    assert history.validate_pairing() == []


@pytest.mark.asyncio
async def test_bounded_history_is_sent_to_model(scheduler: BatchScheduler, scripted_client: Callable) -> None:
    client = scripted_client(AssistantMessage(content="ok"))
    controller = RelanceController(client, scheduler, max_history_messages=2)
    history = HistoryManager()
    history.append(SystemMessage(content="sys"))
    for i in range(5):
        history.append(UserMessage(content=f"u{i}"))
        history.append(AssistantMessage(content=f"a{i}"))

    await controller.run(history, "latest")

    sent = client.calls[0]
    assert [m.content for m in sent] == ["sys", "a4", "latest"]


@pytest.mark.asyncio
async def test_tool_calls_message_uses_round_batch_id(
    scheduler: BatchScheduler, scripted_client: Callable, make_calls: Callable, created: List[str]
) -> None:
    ids = iter(["batch-1", "batch-2"])
    client = scripted_client(
        make_calls(req("x1"), req("x2")),
        AssistantMessage(content="done"),
    )
    controller = RelanceController(client, scheduler, batch_id_factory=lambda: next(ids))

    outcome = await controller.run(HistoryManager(), "two identical folders")

    # Identical calls requested together share a batch id and both run.
    assert all(r.success for r in outcome.tool_results)
    assert created == ["Test1", "Test1"]
    assert {e.batch_id for e in scheduler.executor.ledger.entries()} == {"batch-1"}


def test_from_settings(scheduler: BatchScheduler, scripted_client: Callable) -> None:
    settings = OrchestratorSettings(relance_budget=5, max_history_messages=12, max_total_tool_calls=40)
    controller = RelanceController.from_settings(scripted_client(AssistantMessage(content="x")), scheduler, settings)

    assert controller.limits == TurnLimits(relance_budget=5, max_total_tool_calls=40, max_turn_seconds=None)
    assert controller.max_history_messages == 12


@pytest.mark.asyncio
async def test_controller_rejects_turn_with_pending_calls(scheduler: BatchScheduler, scripted_client: Callable) -> None:
    history = HistoryManager()
    history.append(AssistantToolCallsMessage(tool_calls=[req("p1")]))
    controller = RelanceController(scripted_client(AssistantMessage(content="x")), scheduler)

    with pytest.raises(HistoryInvariantError):
        await controller.run(history, "hello")


@pytest.mark.asyncio
async def test_repeated_id_in_one_reply_is_denied_not_raised(
    scheduler: BatchScheduler, scripted_client: Callable, make_calls: Callable, created: List[str]
) -> None:
    client = scripted_client(
        make_calls(req("t1", folder="A"), req("t1", folder="B")),
        AssistantMessage(content="Folder A created."),
    )
    controller = RelanceController(client, scheduler)
    history = HistoryManager()

    outcome = await controller.run(history, "go")

    assert outcome.phase is RelancePhase.FINAL_ANSWER
    assert created == ["A"]
    first, second = outcome.tool_results
    assert first.success
    assert second.tool_call_id == "t1#1"
    assert second.error_code is ErrorCode.ANTI_LOOP_ID
    assert second.error.details["reason"] == "DUPLICATE_ID"
    assert second.error.details["conflicting_call_id"] == "t1"
    calls_message = history.messages[1]
    assert isinstance(calls_message, AssistantToolCallsMessage)
    assert calls_message.call_ids == ["t1", "t1#1"]
    assert history.validate_pairing() == []


def test_normalize_call_ids_skips_taken_ids() -> None:
    calls = [req("t1", folder="A"), req("t1#1", folder="B"), req("t1", folder="C"), req("t1", folder="D")]

    normalized, renamed = normalize_call_ids(calls)

    assert [c.id for c in normalized] == ["t1", "t1#1", "t1#2", "t1#3"]
    assert renamed == {"t1#2": "t1", "t1#3": "t1"}
    assert normalized[2].arguments_json == calls[2].arguments_json
