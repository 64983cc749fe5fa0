"""Provider-agnostic message models for the conversation transcript."""

from abc import ABC
from typing import Annotated, Any, List, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator

from ..tools.models import ToolCallResult, ToolInvocationRequest


class BaseMessage(ABC, BaseModel):
    """Base model for messages exchanged with a model.

    Attributes:
        kind: Discriminator of the message variant.
        author: Role associated with the message.
        content: Text payload of the message.
    """

    kind: str
    author: str
    content: str = ""

    @property
    def is_plain(self) -> bool:
        """True for user and assistant text messages, the ones counted by bounded history."""
        return False

    @property
    def is_tool_message(self) -> bool:
        return False


class SystemMessage(BaseMessage):
    """Message authored by the system to steer behavior. Never evicted."""

    kind: Literal["system"] = "system"
    author: str = "system"


class UserMessage(BaseMessage):
    """Message authored by an end user."""

    kind: Literal["user"] = "user"
    author: str = "user"

    @property
    def is_plain(self) -> bool:
        return True


class AssistantMessage(BaseMessage):
    """Natural-language reply authored by the assistant."""

    kind: Literal["assistant_text"] = "assistant_text"
    author: str = "assistant"

    @property
    def is_plain(self) -> bool:
        return True


class AssistantToolCallsMessage(BaseMessage):
    """Assistant turn requesting one or more tool invocations.

    Must be followed by exactly one ``ToolResultMessage`` per listed request
    before any other plain message.
    """

    kind: Literal["assistant_tool_calls"] = "assistant_tool_calls"
    author: str = "assistant"
    tool_calls: List[ToolInvocationRequest]

    @property
    def is_tool_message(self) -> bool:
        return True

    @property
    def call_ids(self) -> List[str]:
        return [call.id for call in self.tool_calls]


class ToolResultMessage(BaseMessage):
    """Result of one tool invocation, paired with its originating request by id."""

    kind: Literal["tool_result"] = "tool_result"
    author: str = "tool"
    result: ToolCallResult

    @model_validator(mode="before")
    @classmethod
    def _fill_content(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("content"):
            result = data.get("result")
            if isinstance(result, ToolCallResult):
                data = {**data, "content": result.to_content()}
            elif isinstance(result, dict):
                data = {**data, "content": ToolCallResult.model_validate(result).to_content()}
        return data

    @classmethod
    def from_result(cls, result: ToolCallResult) -> "ToolResultMessage":
        return cls(result=result)

    @property
    def is_tool_message(self) -> bool:
        return True

    @property
    def tool_call_id(self) -> str:
        return self.result.tool_call_id

    @property
    def name(self) -> str:
        return self.result.tool_name


ChatMessage = Annotated[
    Union[SystemMessage, UserMessage, AssistantMessage, AssistantToolCallsMessage, ToolResultMessage],
    Field(discriminator="kind"),
]

ChatMessageList: TypeAdapter[List[ChatMessage]] = TypeAdapter(List[ChatMessage])
