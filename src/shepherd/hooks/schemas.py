"""Hook payloads as the three AI CLIs deliver them.

Every field is optional: the CLIs add and drop keys between releases and
a hook must never reject its input.
"""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class HookPayload(BaseModel):
    """Fields shared by every hook invocation."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    session_id: str = ""
    cwd: str = ""


class ToolUsePayload(HookPayload):
    """Claude PostToolUse / Gemini AfterTool."""

    tool_name: str = Field(
        default="", validation_alias=AliasChoices("tool_name", "toolName")
    )
    tool_response: Any = None


class StopPayload(HookPayload):
    """Claude Stop."""

    stop_hook_active: bool = False
    transcript_path: str = ""


class CodexNotifyPayload(HookPayload):
    """Codex ``notify`` argument; keys are hyphenated."""

    type: str = ""
    thread_id: str = Field(default="", alias="thread-id")
    turn_id: str = Field(default="", alias="turn-id")


class ModelResponsePayload(HookPayload):
    """Gemini AfterModel; one per streamed chunk."""

    llm_response: dict[str, Any] = Field(default_factory=dict)

    @property
    def finish_reason(self) -> str:
        candidates = self.llm_response.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            return ""
        first = candidates[0]
        if not isinstance(first, dict):
            return ""
        return str(first.get("finishReason") or "")
