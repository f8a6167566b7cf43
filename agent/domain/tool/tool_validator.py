# Parameter validation
from typing import Any, Dict

from pydantic import BaseModel, ValidationError

from domain.errors import ToolExecutionFailure
from domain.models.tool_call import ToolCallRequest
from .tool_registry import ToolDefinition


class ToolParameterValidator:
    @staticmethod
    def validate_tool_call(tool: ToolDefinition, call: ToolCallRequest) -> BaseModel:
        """Parse the model-supplied arguments into the tool's argument model"""

        if call.args_error:
            raise ToolExecutionFailure(tool.name, f"Malformed arguments: {call.args_error}", call.id)

        try:
            return tool.args_model.model_validate(call.args)
        except ValidationError as e:
            raise ToolExecutionFailure(
                tool.name,
                f"Invalid arguments: {_summarize(e)}",
                call.id,
            ) from e


def _summarize(error: ValidationError) -> str:
    problems = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"]) or "arguments"
        problems.append(f"{location}: {detail['msg']}")
    return "; ".join(problems)


def describe_arguments(args: Dict[str, Any]) -> Dict[str, Any]:
    """Arguments trimmed for logging"""

    return {key: (value[:100] if isinstance(value, str) else value) for key, value in args.items()}
