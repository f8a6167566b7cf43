from typing import Any, Dict, Optional, Union
import json

from langchain_core.messages import ToolMessage
from pydantic import BaseModel, Field


# Tool-result contents a caller sends to confirm or deny a deferred tool call
APPROVAL_YES = "Yes, confirmed."
APPROVAL_NO = "No, denied."
DENIED_RESULT = "Error: User denied access to tool execution"


class ToolCallRequest(BaseModel):
    """A structured request from the model to invoke a named tool"""
    id: str
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    args_error: Optional[str] = Field(None, description="Set when the model sent unparsable arguments")

    @classmethod
    def from_message_call(cls, call: Dict[str, Any]) -> "ToolCallRequest":
        return cls(id=call["id"], name=call["name"], args=call.get("args") or {})

    def to_message_call(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "args": self.args, "type": "tool_call"}


class PendingToolCall(BaseModel):
    """A tool call waiting on user confirmation"""
    tool_call_id: str
    tool_name: str
    args: Dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """Outcome of one tool execution"""
    tool_call_id: str
    tool_name: str
    success: bool
    data: Any = None
    error: Optional[Union[str, Dict[str, Any]]] = None
    duration_ms: Optional[float] = None

    @property
    def payload(self) -> Any:
        return self.data if self.success else self.error

    def to_message(self) -> ToolMessage:
        content = self.payload
        if not isinstance(content, str):
            content = json.dumps(content, ensure_ascii=False, default=str)
        return ToolMessage(
            content=content,
            tool_call_id=self.tool_call_id,
            name=self.tool_name,
            status="success" if self.success else "error",
        )
