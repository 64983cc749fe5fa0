from typing import Any, Dict, Iterable, List, Optional, cast

from openai import AsyncOpenAI
from openai.types.chat import ChatCompletion

from ...llm_core.base import BaseModelClient, ModelReply
from ...llm_core.exceptions import ModelClientError
from ...llm_core.logger import get_logger
from ...llm_core.messages import (
    AssistantMessage,
    AssistantToolCallsMessage,
    BaseMessage,
    SystemMessage,
    ToolResultMessage,
    UserMessage,
)
from ...llm_core.tools.models import ToolInvocationRequest
from .registry import OpenAIToolRegistry

logger = get_logger(__name__)


class OpenAIModelClient(BaseModelClient):
    """
    Model client for OpenAI chat completions.

    Converts the transcript to OpenAI wire messages, advertises the registry's
    tools and turns the reply into either an ``AssistantMessage`` or an
    ``AssistantToolCallsMessage``. Tool execution itself is left to the
    relance controller.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model_name: str,
        sys_instruction: Optional[str] = None,
        registry: Optional[OpenAIToolRegistry] = None,
        temp: float = 1.0,
        max_tokens: int = 3000,
        max_retries: int = 3,
        base_retry_delay: float = 1.0,
    ):
        """
        Initializes the OpenAI model client.

        Args:
            client: The initialized AsyncOpenAI client.
            model_name: The identifier for the OpenAI model to use (e.g., 'gpt-4o-mini').
            sys_instruction: A system-level instruction, prepended when the history has no system message.
            registry: An optional registry holding the tools the model may request.
            temp: The temperature for text generation, controlling randomness.
            max_tokens: The maximum number of tokens to generate in the response.
            max_retries: Retries on transient API failures.
            base_retry_delay: Initial backoff delay in seconds.
        """
        super().__init__(max_retries=max_retries, base_retry_delay=base_retry_delay)
        self.client: AsyncOpenAI = client
        self.model: str = model_name
        self.sys_instruction = sys_instruction
        self.registry: OpenAIToolRegistry = registry if registry is not None else OpenAIToolRegistry()
        self.temperature = temp
        self.max_tokens = max_tokens

    async def _send_impl(self, history: List[BaseMessage]) -> ModelReply:
        messages = self._convert_history(history)
        if self.sys_instruction and not any(isinstance(m, SystemMessage) for m in history):
            messages.insert(0, {"role": "system", "content": self.sys_instruction})

        logger.debug(f"Sending {len(messages)} message(s) to OpenAI model: {self.model}")
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=cast(Iterable[Any], messages),
            tools=self.registry.tool_object,  # type: ignore[arg-type]
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        return self._parse_response(response)

    @staticmethod
    def _convert_history(history: List[BaseMessage]) -> List[Dict[str, Any]]:
        """
        Converts the provider-agnostic transcript to OpenAI message dictionaries.

        Args:
            history: List of BaseMessage objects.

        Returns:
            List of OpenAI message dictionaries.
        """
        openai_history: List[Dict[str, Any]] = []
        for msg in history:
            if isinstance(msg, SystemMessage):
                openai_history.append({"role": "system", "content": msg.content})
            elif isinstance(msg, UserMessage):
                openai_history.append({"role": "user", "content": msg.content})
            elif isinstance(msg, AssistantToolCallsMessage):
                openai_history.append(
                    {
                        "role": "assistant",
                        "content": msg.content or None,
                        "tool_calls": [
                            {
                                "id": call.id,
                                "type": "function",
                                "function": {"name": call.tool_name, "arguments": call.arguments_json},
                            }
                            for call in msg.tool_calls
                        ],
                    }
                )
            elif isinstance(msg, AssistantMessage):
                openai_history.append({"role": "assistant", "content": msg.content})
            elif isinstance(msg, ToolResultMessage):
                openai_history.append(
                    {"role": "tool", "content": msg.content, "tool_call_id": msg.tool_call_id, "name": msg.name}
                )
        return openai_history

    @staticmethod
    def _parse_response(response: ChatCompletion) -> ModelReply:
        """
        Extracts the assistant reply from a chat completion.

        Raises:
            ModelClientError: If the completion has no choices.
        """
        if not response.choices:
            raise ModelClientError("OpenAI response contained no choices.")

        message = response.choices[0].message
        tool_calls = message.tool_calls or []
        requests = [
            ToolInvocationRequest(
                id=tool_call.id,
                tool_name=tool_call.function.name,
                arguments_json=tool_call.function.arguments or "{}",
            )
            for tool_call in tool_calls
            if tool_call.type == "function"
        ]

        if requests:
            logger.debug(f"Model requested {len(requests)} tool call(s): {[r.tool_name for r in requests]}")
            return AssistantToolCallsMessage(content=message.content or "", tool_calls=requests)

        return AssistantMessage(content=message.content or "")
