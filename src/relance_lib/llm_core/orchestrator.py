"""Wiring of ledger, executor, scheduler and controller from one settings object."""

from typing import Any, Optional, Union

from .base import ModelClient
from .config import OrchestratorSettings
from .history import HistoryManager
from .logger import get_logger
from .messages import SystemMessage, UserMessage
from .relance import RelanceController, TurnOutcome
from .tools.execution import BatchScheduler, CancellationToken, ToolCallExecutor
from .tools.ledger import ExecutionLedger
from .tools.registry import ToolRegistry

logger = get_logger(__name__)


class ToolOrchestrator:
    """
    Owns one execution ledger and the components sharing it.

    Create one orchestrator per process (or per long-lived service) and one
    ``HistoryManager`` per chat session.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        model_client: ModelClient,
        settings: Optional[OrchestratorSettings] = None,
    ):
        self.settings = settings or OrchestratorSettings()
        self.registry = registry
        self.ledger = ExecutionLedger(signature_ttl=self.settings.signature_ttl)
        self.executor = ToolCallExecutor(
            registry=registry,
            ledger=self.ledger,
            tool_timeout=self.settings.tool_timeout_seconds,
        )
        self.scheduler = BatchScheduler.from_settings(self.executor, self.settings)
        self.controller = RelanceController.from_settings(model_client, self.scheduler, self.settings)
        logger.debug(f"Orchestrator ready with {len(registry)} tool(s): {self.settings.model_dump()}")

    def new_history(self, system_instruction: Optional[str] = None) -> HistoryManager:
        history = HistoryManager(max_stored_messages=self.settings.max_stored_messages)
        if system_instruction:
            history.append(SystemMessage(content=system_instruction))
        return history

    async def handle_message(
        self,
        history: HistoryManager,
        user_message: Union[str, UserMessage],
        auth_context: Any = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> TurnOutcome:
        """Run one user message through the relance controller."""
        return await self.controller.run(history, user_message, auth_context, cancellation)
