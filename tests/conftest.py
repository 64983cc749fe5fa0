import os
from typing import Any, Callable, List, Sequence, Union

import pytest
from dotenv import find_dotenv, load_dotenv
from openai import AsyncOpenAI

from relance_lib import (
    AssistantMessage,
    AssistantToolCallsMessage,
    BaseModelClient,
    ExecutionLedger,
    ToolCallExecutor,
    BatchScheduler,
    ToolInvocationRequest,
    ToolRegistry,
)
from relance_lib.llm_core.messages import BaseMessage

# Load environment variables from .env file, if any
env_file = find_dotenv()
if env_file:
    load_dotenv(env_file)


class ConcreteTestRegistry(ToolRegistry):
    @property
    def tool_object(self) -> Any:
        return [{"name": name} for name in self.tools]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


Reply = Union[AssistantMessage, AssistantToolCallsMessage, Exception]


class ScriptedModelClient(BaseModelClient):
    """Model client replaying a list of replies; the last one repeats once the script is exhausted."""

    def __init__(self, replies: Sequence[Reply]) -> None:
        super().__init__(max_retries=0, base_retry_delay=0.0)
        self.replies = list(replies)
        self.calls: List[List[BaseMessage]] = []

    async def _send_impl(self, history: List[BaseMessage]) -> Union[AssistantMessage, AssistantToolCallsMessage]:
        self.calls.append(list(history))
        index = min(len(self.calls) - 1, len(self.replies) - 1)
        reply = self.replies[index]
        if isinstance(reply, Exception):
            raise reply
        return reply


def tool_calls(*calls: ToolInvocationRequest) -> AssistantToolCallsMessage:
    return AssistantToolCallsMessage(tool_calls=list(calls))


@pytest.fixture
def registry() -> ConcreteTestRegistry:
    return ConcreteTestRegistry()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ledger(clock: FakeClock) -> ExecutionLedger:
    return ExecutionLedger(signature_ttl=5.0, clock=clock)


@pytest.fixture
def executor(registry: ConcreteTestRegistry, ledger: ExecutionLedger) -> ToolCallExecutor:
    return ToolCallExecutor(registry=registry, ledger=ledger, tool_timeout=2.0)


@pytest.fixture
def scheduler(executor: ToolCallExecutor) -> BatchScheduler:
    return BatchScheduler(executor, max_batch_size=20, inter_batch_pause=0.0)


@pytest.fixture
def scripted_client() -> Callable[..., ScriptedModelClient]:
    def factory(*replies: Reply) -> ScriptedModelClient:
        return ScriptedModelClient(replies)

    return factory


@pytest.fixture
def make_calls() -> Callable[..., AssistantToolCallsMessage]:
    return tool_calls


@pytest.fixture
def openai_client() -> AsyncOpenAI:
    api_key = os.getenv("OPENAI_API_KEY") or "dummy_key"
    return AsyncOpenAI(api_key=api_key, base_url=os.getenv("OPENAI_BASE_URL"))
