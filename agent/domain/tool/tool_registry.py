from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field
import structlog

logger = structlog.get_logger(__name__)

ToolHandler = Callable[[Any], Awaitable[Any]]


class NoArgs(BaseModel):
    """Argument model for tools that take no arguments"""


class ToolDefinition(BaseModel):
    """A callable tool exposed to the model"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_model: Type[BaseModel] = Field(description="Validates and documents the tool arguments")
    handler: ToolHandler = Field(description="Receives the validated arguments model")
    requires_confirmation: bool = Field(
        default=False,
        description="Deferred until the user confirms; otherwise executed automatically"
    )
    category: str = "general"

    def to_schema(self) -> Dict[str, Any]:
        """Function-calling schema handed to the inference collaborator"""

        parameters = self.args_model.model_json_schema(by_alias=True)
        parameters.pop("title", None)
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }


class ToolRegistry:
    """Registry for managing available tools"""

    def __init__(self, tools: Optional[List[ToolDefinition]] = None):
        self.tools: Dict[str, ToolDefinition] = {}
        for tool in tools or []:
            self.register_tool(tool)

    def register_tool(self, tool: ToolDefinition):
        """Register a new tool, replacing any tool with the same name"""

        if tool.name in self.tools:
            logger.warning("Replacing registered tool", tool_name=tool.name)
        self.tools[tool.name] = tool

    def get_tool(self, name: str) -> Optional[ToolDefinition]:
        """Get a tool by name"""

        return self.tools.get(name)

    def get_available_tools(self) -> List[ToolDefinition]:
        """Get all available tools"""

        return list(self.tools.values())

    def get_tool_schemas(self) -> List[Dict[str, Any]]:
        """Schemas of all tools, in registration order"""

        return [tool.to_schema() for tool in self.tools.values()]

    def requires_confirmation(self, name: str) -> bool:
        tool = self.tools.get(name)
        return bool(tool and tool.requires_confirmation)
