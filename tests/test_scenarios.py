"""End-to-end behaviours of the ledger, executor and scheduler working together."""

import asyncio
from typing import Annotated, Any, Callable, List
from unittest.mock import AsyncMock, patch

import pytest
from pydantic import Field

from relance_lib import (
    BatchScheduler,
    ErrorCode,
    HistoryManager,
    RelanceController,
    RelancePhase,
    StopReason,
    ToolCallExecutor,
    ToolInvocationRequest,
    TurnLimits,
)


def create(call_id: str, name: str = "Test1") -> ToolInvocationRequest:
    return ToolInvocationRequest(id=call_id, tool_name="create_folder", arguments_json=f'{{"name": "{name}"}}')


@pytest.fixture
def created(registry: Any) -> List[str]:
    folders: List[str] = []

    @registry.tool
    def create_folder(name: Annotated[str, Field(description="Folder name")]) -> str:
        """Create a folder."""
        folders.append(name)
        return name

    return folders


@pytest.mark.asyncio
async def test_replayed_id_is_denied(executor: ToolCallExecutor, created: List[str]) -> None:
    first = await executor.execute(create("t1"), batch_id="b1")
    replay = await executor.execute(create("t1"), batch_id="b2")

    assert first.success
    assert replay.error_code is ErrorCode.ANTI_LOOP_ID
    assert replay.error.details["reason"] == "DUPLICATE_ID"
    assert created == ["Test1"]


@pytest.mark.asyncio
async def test_identical_calls_in_one_batch_both_run(scheduler: BatchScheduler, created: List[str]) -> None:
    results = await scheduler.run_all([create("t1"), create("t2")], batch_id="b1")

    assert [r.success for r in results] == [True, True]
    assert created == ["Test1", "Test1"]


@pytest.mark.asyncio
async def test_identical_call_from_next_batch_waits_for_ttl(
    executor: ToolCallExecutor, clock: Any, created: List[str]
) -> None:
    await executor.execute(create("t1"), batch_id="b1")

    clock.advance(2.0)
    too_soon = await executor.execute(create("t2"), batch_id="b2")
    clock.advance(3.0)
    later = await executor.execute(create("t3"), batch_id="b3")

    assert too_soon.error_code is ErrorCode.ANTI_LOOP_SIGNATURE
    assert too_soon.error.details["conflicting_call_id"] == "t1"
    assert later.success
    assert created == ["Test1", "Test1"]


@pytest.mark.asyncio
async def test_forty_five_calls_run_in_three_chunks(executor: ToolCallExecutor, registry: Any) -> None:
    in_flight = 0
    peaks: List[int] = []

    @registry.tool
    async def create_folder(name: Annotated[str, Field(description="Folder name")]) -> str:
        """Create a folder."""
        nonlocal in_flight
        in_flight += 1
        peaks.append(in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return name

    scheduler = BatchScheduler(executor, max_batch_size=20, inter_batch_pause=1.0)
    requests = [create(f"c{i}", name=f"F{i}") for i in range(45)]

    with patch(
        "relance_lib.llm_core.tools.execution.scheduler.sleep_or_cancel", new=AsyncMock(return_value=True)
    ) as pause:
        results = await scheduler.run_all(requests, batch_id="b1")

    assert [len(chunk) for chunk in BatchScheduler.partition(requests, 20)] == [20, 20, 5]
    assert [r.tool_call_id for r in results] == [f"c{i}" for i in range(45)]
    assert all(r.success for r in results)
    assert max(peaks) <= 20
    assert pause.await_count == 2
    assert pause.await_args_list[0].args[0] == 1.0


@pytest.mark.asyncio
async def test_fifth_round_never_runs_with_budget_of_three(
    scheduler: BatchScheduler, scripted_client: Callable, make_calls: Callable, created: List[str]
) -> None:
    client = scripted_client(*[make_calls(create(f"r{i}", name=f"F{i}")) for i in range(5)])
    controller = RelanceController(client, scheduler, limits=TurnLimits(relance_budget=3))

    outcome = await controller.run(HistoryManager(), "keep going")

    assert outcome.phase is RelancePhase.FORCED_FINAL
    assert outcome.stop_reason is StopReason.RELANCE_BUDGET_EXCEEDED
    assert created == ["F0", "F1", "F2"]
    assert not scheduler.executor.ledger.has_id("r3")
    assert "Actions performed:" in outcome.final_text
