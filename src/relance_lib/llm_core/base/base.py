"""Core abstractions for model provider clients."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Coroutine, List, Protocol, TypeVar, Union, runtime_checkable

from ..exceptions import ModelClientError
from ..logger import get_logger
from ..messages import AssistantMessage, AssistantToolCallsMessage, BaseMessage

logger = get_logger(__name__)

ModelReply = Union[AssistantMessage, AssistantToolCallsMessage]
T = TypeVar("T")


@runtime_checkable
class ModelClient(Protocol):
    """Contract of a model provider as seen by the relance controller.

    ``send`` receives the bounded transcript and returns either a text answer
    or a list of tool call requests, in the order the provider produced them.
    """

    async def send(self, history: List[BaseMessage]) -> ModelReply: ...


class BaseModelClient(ABC):
    """Abstract base class for provider clients, with retries on transient failures.

    Implementations only provide ``_send_impl``; ``send`` wraps it in an
    exponential backoff loop and raises ``ModelClientError`` once retries are exhausted.
    """

    def __init__(self, max_retries: int = 3, base_retry_delay: float = 1.0):
        self.max_retries = max_retries
        self.base_retry_delay = base_retry_delay

    async def _execute_with_retry(
        self,
        func: Callable[..., Coroutine[Any, Any, T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """
        Executes a function with retry logic.

        Args:
            func: The asynchronous function to execute.
            *args: Positional arguments for the function.
            **kwargs: Keyword arguments for the function.

        Returns:
            The result of the function call.

        Raises:
            ModelClientError: Wrapping the last encountered exception if all retries fail.
        """
        delay = self.base_retry_delay
        for attempt in range(self.max_retries + 1):
            try:
                return await func(*args, **kwargs)
            except ModelClientError:
                raise
            except Exception as e:
                if attempt == self.max_retries:
                    msg = f"Model request failed after {self.max_retries} retries: {e}"
                    logger.error(msg)
                    raise ModelClientError(msg) from e

                logger.warning(f"API Error (Retry: {attempt + 1}/{self.max_retries}): {e}. Waiting {delay}s...")
                await asyncio.sleep(delay)
                delay *= 2  # Exponential backoff

        raise ModelClientError(f"Failed to get response after {self.max_retries} retries.")

    async def send(self, history: List[BaseMessage]) -> ModelReply:
        """
        Sends the transcript to the provider.

        Args:
            history: The bounded conversation history (provider-agnostic format).

        Returns:
            An ``AssistantMessage`` for a final answer, or an
            ``AssistantToolCallsMessage`` listing the requested invocations.
        """
        return await self._execute_with_retry(self._send_impl, history)

    @abstractmethod
    async def _send_impl(self, history: List[BaseMessage]) -> ModelReply:
        pass
