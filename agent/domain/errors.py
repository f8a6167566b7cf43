"""
Error taxonomy for the avatar agent.

StateCorruption is recovered inside the state store. ToolExecutionFailure is
turned into a tool-result payload the model can react to. UnresolvedToolCall
and InferenceFailure terminate the stream with an error chunk.
"""

from typing import Any, Dict, Optional


class AgentError(Exception):
    """Base class for agent errors"""


class StateCorruption(AgentError):
    """Persisted agent state is malformed"""


class ToolExecutionFailure(AgentError):
    """A tool handler raised, timed out, or was given invalid arguments"""

    def __init__(self, tool_name: str, message: str, tool_call_id: Optional[str] = None):
        super().__init__(f"{tool_name}: {message}")
        self.tool_name = tool_name
        self.message = message
        self.tool_call_id = tool_call_id

    def to_payload(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "error_type": "tool_execution_failure",
            "tool": self.tool_name,
        }


class UnresolvedToolCall(AgentError):
    """A tool call without a result would be forwarded to the model"""

    def __init__(self, tool_call_id: str, tool_name: str):
        super().__init__(f"Tool call {tool_call_id} ({tool_name}) has no result")
        self.tool_call_id = tool_call_id
        self.tool_name = tool_name


class InferenceFailure(AgentError):
    """The inference collaborator failed or timed out"""
