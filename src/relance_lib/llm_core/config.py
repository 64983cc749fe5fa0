"""
Configuration surface of the orchestration engine.

Settings are read from explicit keyword arguments, then ``RELANCE_*``
environment variables, then a ``.env`` file, then the defaults below.
"""

from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .logger import get_logger

logger = get_logger(__name__)


class OrchestratorSettings(BaseSettings):
    """Recognized options for the ledger, scheduler, controller and history."""

    model_config = SettingsConfigDict(
        env_prefix="RELANCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    max_batch_size: int = Field(default=20, ge=1, description="Maximum invocations run concurrently per chunk")
    inter_batch_pause_ms: int = Field(default=1000, ge=0, description="Pause inserted between two chunks")
    signature_ttl_ms: int = Field(default=5000, gt=0, description="Window during which identical calls are denied")
    relance_budget: int = Field(default=3, ge=0, description="Maximum relance rounds per user message")
    max_history_messages: int = Field(
        default=30, ge=1, description="Plain messages kept in the bounded history sent to the model"
    )
    max_stored_messages: int = Field(
        default=200, ge=1, description="Conversation capacity before the oldest messages are evicted"
    )
    tool_timeout_seconds: float = Field(default=180.0, gt=0, description="Per-call handler timeout")
    max_total_tool_calls: Optional[int] = Field(
        default=None, ge=1, description="Optional cap on executed tool calls per user message"
    )
    max_turn_seconds: Optional[float] = Field(
        default=None, gt=0, description="Optional wall-clock budget per user message"
    )

    @model_validator(mode="after")
    def _check_history_bounds(self) -> "OrchestratorSettings":
        if self.max_stored_messages < self.max_history_messages:
            logger.warning(
                "max_stored_messages (%s) is lower than max_history_messages (%s); "
                "bounded history will never reach its limit.",
                self.max_stored_messages,
                self.max_history_messages,
            )
        return self

    @property
    def inter_batch_pause(self) -> float:
        """Pause between chunks, in seconds."""
        return self.inter_batch_pause_ms / 1000

    @property
    def signature_ttl(self) -> float:
        """Signature dedup window, in seconds."""
        return self.signature_ttl_ms / 1000
