"""
Conversation Models

The orchestrator owns a transcript of ChatTurn objects. Model-side
session state is never stored here; every round-trip sends the full
transcript, so any model API can sit behind the LanguageModel seam.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from ledger_agent.models.transaction import utc_now


class ChatRole(str, Enum):
    """Who produced a turn."""
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ReplyLanguage(str, Enum):
    """Languages the assistant answers in."""
    ENGLISH = "en"
    TRADITIONAL_CHINESE = "zh-TW"


class ToolErrorCode(str, Enum):
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    UNKNOWN_TOOL = "unknown_tool"
    INVALID_ARGUMENTS = "invalid_arguments"


class ToolCall(BaseModel):
    """
    A structured invocation requested by the model.

    name is kept as the raw string the model produced; it may not be a
    known tool.
    """

    call_id: str = Field(
        default_factory=lambda: uuid4().hex,
        description="Correlates the call with its result"
    )
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolError(BaseModel):
    """Structured failure handed back to the model instead of an exception."""

    code: ToolErrorCode
    message: str
    issues: list[dict[str, str]] = Field(default_factory=list)


class ToolResult(BaseModel):
    """Outcome of one tool call, paired with it through call_id."""

    call_id: str
    name: str
    output: Optional[Any] = None
    error: Optional[ToolError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_model_payload(self) -> dict[str, Any]:
        """The response object echoed back to the model."""
        if self.error is not None:
            return {
                "call_id": self.call_id,
                "error": self.error.model_dump(mode="json"),
            }
        return {"call_id": self.call_id, "output": self.output}


class ChatTurn(BaseModel):
    """
    One entry of the session transcript.

    - user turns carry content
    - assistant turns carry content, tool_calls, or both
    - tool turns carry the tool_results for the preceding assistant turn
    """

    role: ChatRole
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_results: list[ToolResult] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def is_visible(self) -> bool:
        """Shown to the user (plain text, not tool plumbing)."""
        return self.role != ChatRole.TOOL and bool(self.content)


class ModelTurn(BaseModel):
    """What a single model round-trip produced."""

    text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)

    @property
    def wants_tools(self) -> bool:
        return len(self.tool_calls) > 0


class ReplyStatus(str, Enum):
    ANSWERED = "answered"
    FAILED = "failed"
    ITERATION_LIMIT = "iteration_limit"
    NEEDS_CREDENTIALS = "needs_credentials"


class ChatReply(BaseModel):
    """What send_message returns to the caller (UI, CLI, tests)."""

    text: str
    status: ReplyStatus = ReplyStatus.ANSWERED
    language: ReplyLanguage = ReplyLanguage.TRADITIONAL_CHINESE
    tool_results: list[ToolResult] = Field(default_factory=list)
    correlation_id: UUID = Field(default_factory=uuid4)

    @property
    def tool_names(self) -> list[str]:
        return [result.name for result in self.tool_results]
