"""Data models for tool invocations and their outcomes."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


@dataclass(frozen=True)
class ToolInvocationRequest:
    """A tool call requested by the model.

    ``id`` is model-generated: unique within a response but otherwise untrusted.
    """

    id: str
    tool_name: str
    arguments_json: str = "{}"


class ErrorCode(str, Enum):
    """Failure codes reported to the model inside a failed result."""

    ANTI_LOOP_ID = "ANTI_LOOP_ID"
    ANTI_LOOP_SIGNATURE = "ANTI_LOOP_SIGNATURE"
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    INVALID_ARGUMENTS = "INVALID_ARGUMENTS"
    EXECUTION_ERROR = "EXECUTION_ERROR"
    CANCELLED = "CANCELLED"

    def __str__(self) -> str:
        return self.value


class ErrorPayload(BaseModel):
    """Payload of a failed tool call."""

    model_config = ConfigDict(frozen=True)

    code: ErrorCode
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ToolCallResult(BaseModel):
    """Normalized, immutable outcome of one tool invocation.

    Attributes:
        tool_call_id: Id of the originating ``ToolInvocationRequest``.
        tool_name: Name of the requested tool.
        success: Whether the handler ran and returned normally.
        payload: Handler output on success, an ``ErrorPayload`` on failure.
        executed_at: When the result was produced.
    """

    model_config = ConfigDict(frozen=True)

    tool_call_id: str
    tool_name: str
    success: bool
    payload: Any = None
    executed_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="before")
    @classmethod
    def _restore_error_payload(cls, data: Any) -> Any:
        # Failed results loaded from JSON carry the error payload as a plain dict.
        if isinstance(data, dict) and not data.get("success", True):
            payload = data.get("payload")
            if isinstance(payload, dict) and "code" in payload:
                data = {**data, "payload": ErrorPayload.model_validate(payload)}
        return data

    @classmethod
    def ok(cls, request: ToolInvocationRequest, output: Any) -> "ToolCallResult":
        return cls(tool_call_id=request.id, tool_name=request.tool_name, success=True, payload=output)

    @classmethod
    def failure(
        cls,
        request: ToolInvocationRequest,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> "ToolCallResult":
        return cls(
            tool_call_id=request.id,
            tool_name=request.tool_name,
            success=False,
            payload=ErrorPayload(code=code, message=message, details=details or {}),
        )

    @property
    def error(self) -> Optional[ErrorPayload]:
        """The error payload of a failed result, None on success."""
        if not self.success and isinstance(self.payload, ErrorPayload):
            return self.payload
        return None

    @property
    def error_code(self) -> Optional[ErrorCode]:
        error = self.error
        return error.code if error else None

    def to_content(self) -> str:
        """Serialize the result for the ``tool`` message sent back to the model."""
        if self.success:
            body: Dict[str, Any] = {"success": True, "result": self.payload}
        else:
            error = self.error
            body = {
                "success": False,
                "code": str(error.code) if error else str(ErrorCode.EXECUTION_ERROR),
                "error": error.message if error else str(self.payload),
            }
        return json.dumps(body, default=str, ensure_ascii=False)
